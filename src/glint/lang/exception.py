import functools
import sys
import traceback
from types import TracebackType
from typing import Optional


class GlintError(Exception):
    """Base class for all errors raised while reading or compiling glint source.

    Callers which only want to report compilation failures (such as the CLI and the
    REPL) can catch this type without catching unrelated Python errors."""


@functools.singledispatch
def format_exception(  # pylint: disable=unused-argument
    e: Optional[BaseException],
    tp: Optional[type[BaseException]] = None,
    tb: Optional[TracebackType] = None,
    disable_color: Optional[bool] = None,
) -> list[str]:
    """Format an exception into something readable, returning a list of newline
    terminated strings.

    For the majority of Python exceptions, this will just be the result from calling
    `traceback.format_exception`. Read errors and compiler errors register their
    own formatters which show the location and source context of the failure.

    If `disable_color` is True, no color formatting should be applied to the source
    code."""
    if isinstance(e, BaseException):
        if tp is None:
            tp = type(e)
        if tb is None:
            tb = e.__traceback__
    return traceback.format_exception(tp, e, tb)


def print_exception(
    e: Optional[BaseException],
    tp: Optional[type[BaseException]] = None,
    tb: Optional[TracebackType] = None,
    disable_color: Optional[bool] = None,
) -> None:
    """Print the given exception `e` to stderr using glint's exception formatting."""
    print(
        "".join(format_exception(e, tp, tb, disable_color=disable_color)),
        file=sys.stderr,
    )
