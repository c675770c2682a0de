# pylint: disable=ungrouped-imports

import os
import re
from collections.abc import Iterable, Mapping
from functools import partial
from types import MappingProxyType
from typing import Any, Callable, Optional

from prompt_toolkit import PromptSession
from prompt_toolkit.application import run_in_terminal
from prompt_toolkit.auto_suggest import AutoSuggestFromHistory
from prompt_toolkit.completion import CompleteEvent, Completer, Completion
from prompt_toolkit.document import Document
from prompt_toolkit.history import FileHistory
from prompt_toolkit.key_binding import KeyBindings
from prompt_toolkit.key_binding.key_processor import KeyPressEvent
from prompt_toolkit.layout.processors import HighlightMatchingBracketProcessor

from glint.lang import reader as reader
from glint.lang.exception import print_exception
from glint.lang.reader import NamespaceResolver

_USER_DATA_HOME = os.getenv("XDG_DATA_HOME", os.path.expanduser("~/.local/share"))
GLINT_USER_DATA = os.path.abspath(os.path.join(_USER_DATA_HOME, "glint"))

GLINT_REPL_HISTORY_FILE_PATH = os.getenv(
    "GLINT_REPL_HISTORY_FILE_PATH",
    os.path.join(GLINT_USER_DATA, ".glint_history"),
)
GLINT_NO_COLOR = os.environ.get("GLINT_NO_COLOR", "false").lower() in {
    "1",
    "true",
}

CompletionSource = Callable[[str], Iterable[str]]


class Prompter:
    __slots__ = ()

    def prompt(self, msg: str) -> str:
        """Prompt the user for input with the input string `msg`."""
        return input(msg)

    def print(self, msg: str) -> None:
        """Print the message to standard out."""
        print(msg)


_DELIMITED_WORD_PATTERN = re.compile(r"([^\[\](){\}\s]+)")


class REPLCompleter(Completer):
    __slots__ = ("_completions",)

    def __init__(self, completions: CompletionSource):
        self._completions = completions

    def get_completions(
        self, document: Document, _: CompleteEvent
    ) -> Iterable[Completion]:
        """Yield successive REPL completions for Prompt Toolkit."""
        word_before_cursor = document.get_word_before_cursor(
            pattern=_DELIMITED_WORD_PATTERN
        )
        for completion in self._completions(word_before_cursor):
            yield Completion(completion, start_position=-len(word_before_cursor))


class PromptToolkitPrompter(Prompter):
    """Prompter class which wraps Prompt Toolkit utilities to provide advanced
    line editing functionality."""

    __slots__ = ("_session",)

    def __init__(
        self,
        completions: Optional[CompletionSource] = None,
        ns_resolver: Optional[NamespaceResolver] = None,
    ):
        os.makedirs(os.path.dirname(GLINT_REPL_HISTORY_FILE_PATH), exist_ok=True)
        self._session: PromptSession = PromptSession(
            auto_suggest=AutoSuggestFromHistory(),
            completer=REPLCompleter(completions or (lambda _: ())),
            history=FileHistory(GLINT_REPL_HISTORY_FILE_PATH),
            key_bindings=self._get_key_bindings(ns_resolver),
            lexer=self._prompt_toolkit_lexer,
            multiline=True,
            input_processors=[HighlightMatchingBracketProcessor(chars="[](){}")],
            **self._style_settings,
        )

    @staticmethod
    def _get_key_bindings(ns_resolver: Optional[NamespaceResolver]) -> KeyBindings:
        """Return `KeyBindings` which override the builtin `enter` handler to
        allow multi-line input.

        Inputs are read by the reader to determine if they represent valid
        glint syntax. If an `UnexpectedEOFError` is raised, then allow multiline
        input. If a more general `ReadError` is raised, then the exception will
        be printed to the terminal. In all other cases, handle the input normally."""
        kb = KeyBindings()

        @kb.add("enter")
        def _(event: KeyPressEvent) -> None:
            try:
                list(
                    reader.read_str(
                        event.current_buffer.text, ns_resolver=ns_resolver
                    )
                )
            except reader.UnexpectedEOFError:
                event.current_buffer.insert_text("\n")
            except reader.ReadError as e:
                run_in_terminal(
                    partial(print_exception, e, reader.ReadError, e.__traceback__)
                )
            else:
                event.current_buffer.validate_and_handle()

        return kb

    _prompt_toolkit_lexer: Optional["PygmentsLexer"] = None
    _style_settings: Mapping[str, Any] = MappingProxyType({})

    def prompt(self, msg: str) -> str:
        return self._session.prompt(msg)


_DEFAULT_PROMPTER: type[PromptToolkitPrompter] = PromptToolkitPrompter


try:
    import pygments
    from pygments.lexers.javascript import JavascriptLexer
    from pygments.lexers.jvm import ClojureLexer
    from pygments.styles import get_style_by_name
except ImportError:  # pragma: no cover
    pass
else:
    from prompt_toolkit import print_formatted_text
    from prompt_toolkit.formatted_text import PygmentsTokens
    from prompt_toolkit.lexers import PygmentsLexer
    from prompt_toolkit.styles import style_from_pygments_cls

    GLINT_REPL_PYGMENTS_STYLE_NAME = os.getenv(
        "GLINT_REPL_PYGMENTS_STYLE_NAME", "emacs"
    )

    class StyledPromptToolkitPrompter(PromptToolkitPrompter):
        """Prompter class which highlights glint input and the JavaScript compiled
        from it using Pygments."""

        _prompt_toolkit_lexer = PygmentsLexer(ClojureLexer)
        _pygments_lexer = JavascriptLexer()
        _style_settings = MappingProxyType(
            {
                "style": style_from_pygments_cls(
                    get_style_by_name(GLINT_REPL_PYGMENTS_STYLE_NAME)
                ),
                "include_default_pygments_style": False,
            }
        )

        def print(self, msg: str) -> None:
            tokens = list(pygments.lex(msg, lexer=self._pygments_lexer))
            print_formatted_text(PygmentsTokens(tokens), **self._style_settings)

    if not GLINT_NO_COLOR:
        _DEFAULT_PROMPTER = StyledPromptToolkitPrompter


def get_prompter(
    completions: Optional[CompletionSource] = None,
    ns_resolver: Optional[NamespaceResolver] = None,
) -> Prompter:
    """Return a Prompter instance for reading user input from the REPL.

    `completions` is called with the word before the cursor and returns the names
    which complete it. `ns_resolver` resolves namespace aliases in the input as the
    REPL would when reading it.

    Prompter instances may be stateful, so the Prompter instance returned by
    this function can be reused within a single REPL session."""
    return _DEFAULT_PROMPTER(completions=completions, ns_resolver=ns_resolver)


__all__ = ["Prompter", "get_prompter"]
