import os
from enum import Enum
from types import TracebackType
from typing import Any, Optional

import attr

from glint.lang import keyword as kw
from glint.lang import map as lmap
from glint.lang.compiler.nodes import Node
from glint.lang.exception import GlintError, format_exception
from glint.lang.interfaces import IMeta, IPersistentMap
from glint.lang.obj import lrepr
from glint.lang.reader import (
    READER_COL_KW,
    READER_END_COL_KW,
    READER_END_LINE_KW,
    READER_LINE_KW,
)
from glint.lang.source import format_source_context
from glint.lang.typing import ReaderForm

_FILE = kw.keyword("file")
_PHASE = kw.keyword("phase")
_FORM = kw.keyword("form")
_NODE = kw.keyword("node")
_LINE = kw.keyword("line")
_COL = kw.keyword("col")
_END_LINE = kw.keyword("end-line")
_END_COL = kw.keyword("end-col")


class CompilerPhase(Enum):
    MACROEXPANSION = kw.keyword("macroexpansion")
    ANALYZING = kw.keyword("analyzing")
    CODE_GENERATION = kw.keyword("code-generation")


@attr.frozen
class _loc:
    line: Optional[int] = None
    col: Optional[int] = None
    end_line: Optional[int] = None
    end_col: Optional[int] = None

    def __bool__(self):
        return (
            self.line is not None
            or self.col is not None
            or self.end_line is not None
            or self.end_col is not None
        )


@attr.define(str=False)
class CompilerException(GlintError):
    msg: str
    phase: CompilerPhase
    filename: str
    form: Optional[ReaderForm] = None
    node: Optional[Node] = None

    @property
    def data(self) -> IPersistentMap:
        d: dict[kw.Keyword, Any] = {_PHASE: self.phase.value}
        d[_FILE] = self.filename
        loc = None
        if self.form is not None:
            d[_FORM] = self.form
            loc = (
                _loc(
                    self.form.meta.val_at(READER_LINE_KW),
                    self.form.meta.val_at(READER_COL_KW),
                    self.form.meta.val_at(READER_END_LINE_KW),
                    self.form.meta.val_at(READER_END_COL_KW),
                )
                if isinstance(self.form, IMeta) and self.form.meta
                else None
            )
        if self.node is not None:
            d[_NODE] = self.node
            loc = loc or _loc(self.node.env.line, self.node.env.col)
        if loc:
            d[_LINE] = loc.line
            d[_COL] = loc.col
            d[_END_LINE] = loc.end_line
            d[_END_COL] = loc.end_col
        return lmap.map(d)

    @property
    def line(self) -> Optional[int]:
        return self.data.val_at(_LINE)

    @property
    def col(self) -> Optional[int]:
        return self.data.val_at(_COL)

    def __str__(self):
        return f"{self.msg} {lrepr(self.data)}"


class MacroError(CompilerException):
    """Raised when a macro expansion fails or produces something other than a form,
    or when a form exceeds the maximum macroexpansion depth."""


class UnresolvedSymbolError(CompilerException):
    """Raised for symbols which cannot be resolved outside of REPL mode."""


class IllegalRecurError(CompilerException):
    """Raised for `recur` forms outside of tail position or whose arity does not
    match the enclosing loop or function arity."""


class AwaitContextError(CompilerException):
    """Raised for `js-await` forms outside of async functions."""


class DestructureShapeError(CompilerException):
    """Raised for binding patterns which are not symbols, vectors, or maps of a
    supported shape."""


class UnsupportedFormError(CompilerException):
    """Raised for recognized forms which cannot be compiled in their context."""


@format_exception.register(CompilerException)
def format_compiler_exception(  # pylint: disable=too-many-branches,unused-argument
    e: CompilerException,
    tp: Optional[type[Exception]] = None,
    tb: Optional[TracebackType] = None,
    disable_color: Optional[bool] = None,
) -> list[str]:
    """Format a compiler exception as a list of newline-terminated strings.

    If `disable_color` is True, no color formatting will be applied to the source
    code."""
    context_exc: Optional[BaseException] = e.__cause__

    lines = [os.linesep]
    if context_exc is not None:
        lines.append(f"  exception: {type(context_exc)} from {type(e)}{os.linesep}")
    else:
        lines.append(f"  exception: {type(e)}{os.linesep}")
    lines.append(f"      phase: {e.phase.value}{os.linesep}")
    if context_exc is None:
        lines.append(f"    message: {e.msg}{os.linesep}")
    elif isinstance(context_exc, CompilerException):
        lines.append(f"    message: {e.msg}: {context_exc.msg}{os.linesep}")
    else:
        lines.append(f"    message: {e.msg}: {context_exc}{os.linesep}")
    if e.form is not None:
        lines.append(f"       form: {lrepr(e.form)}{os.linesep}")

    d = e.data
    line = d.val_at(_LINE)
    end_line = d.val_at(_END_LINE)
    if line is not None and end_line is not None and line != end_line:
        line_nums = f"{line}-{end_line}"
    elif line is not None:
        line_nums = str(line)
    else:
        line_nums = ""

    lines.append(
        f"   location: {e.filename}:{line_nums or 'NO_SOURCE_LINE'}{os.linesep}"
    )

    if line is not None and (
        context_lines := format_source_context(
            e.filename, line, end_line=end_line, disable_color=disable_color
        )
    ):
        lines.append(f"    context:{os.linesep}")
        lines.append(os.linesep)
        lines.extend(context_lines)

    return lines
