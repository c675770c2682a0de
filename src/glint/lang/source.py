import linecache
import os
from typing import Optional

try:
    import pygments.formatters
    import pygments.lexers
    import pygments.styles
except ImportError:  # pragma: no cover

    def _format_source(
        s: str, disable_color: Optional[bool] = None  # pylint: disable=unused-argument
    ) -> str:
        return f"{s}{os.linesep}"

else:

    def _get_formatter_name(
        disable_color: Optional[bool] = None,
    ) -> Optional[str]:  # pragma: no cover
        """Get the Pygments formatter name for the current terminal.

        If `disable_color` is True or `GLINT_NO_COLOR` is set to a truthy value, no
        formatter is used."""
        if (disable_color is True) or os.environ.get(
            "GLINT_NO_COLOR", "false"
        ).lower() in {"1", "true"}:
            return None
        elif os.environ.get("COLORTERM", "") in {"truecolor", "24bit"}:
            return "terminal16m"
        elif "256" in os.environ.get("TERM", ""):
            return "terminal256"
        else:
            return "terminal"

    def _format_source(
        s: str, disable_color: Optional[bool] = None
    ) -> str:  # pragma: no cover
        if (formatter_name := _get_formatter_name(disable_color)) is None:
            return f"{s}{os.linesep}"
        return pygments.highlight(
            s,
            lexer=pygments.lexers.get_lexer_by_name("clojure"),
            formatter=pygments.formatters.get_formatter_by_name(
                formatter_name, style=pygments.styles.get_style_by_name("emacs")
            ),
        )


def format_source_context(
    filename: str,
    line: int,
    end_line: Optional[int] = None,
    num_context_lines: int = 3,
    disable_color: Optional[bool] = None,
) -> list[str]:
    """Return the lines of `filename` surrounding `line` (through `end_line`, if
    given), each prefixed by its line number. Lines inside the failing range are
    marked with `>`.

    Sources which are not files on disk (such as `<REPL Input>`) produce no context.
    """
    assert num_context_lines >= 0

    if filename.startswith("<") and filename.endswith(">"):
        return []

    linecache.checkcache(filename=filename)
    source_lines = linecache.getlines(filename)
    if not source_lines:
        return []

    last = end_line if end_line is not None else line
    start = max(0, line - 1 - num_context_lines)
    end = min(last + num_context_lines, len(source_lines))

    lines = []
    num_justify = len(str(end)) + 1
    for n in range(start, end):
        marker = " > " if line <= n + 1 <= last else "   "
        line_num = str(n + 1).rjust(num_justify)
        lines.append(
            f"{line_num}{marker}| "
            f"{_format_source(source_lines[n].rstrip(), disable_color=disable_color)}"
        )
    return lines
