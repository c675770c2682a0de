# pylint: disable=too-many-branches,too-many-return-statements

import collections
import contextlib
import functools
import io
import os
import re
from collections.abc import Collection, Iterable, Mapping
from re import Pattern
from types import TracebackType
from typing import Any, Callable, Optional, TypeVar, Union, cast

import attr

from glint.lang import keyword as kw
from glint.lang import list as llist
from glint.lang import map as lmap
from glint.lang import set as lset
from glint.lang import symbol as sym
from glint.lang import util as langutil
from glint.lang import vector as vec
from glint.lang.exception import GlintError, format_exception
from glint.lang.interfaces import IMeta, IWithMeta
from glint.lang.obj import lrepr
from glint.lang.source import format_source_context
from glint.lang.tagged import JS_TAG, JSX_TAG, TaggedLiteral, tagged_literal
from glint.lang.typing import LispForm, ReaderForm
from glint.util import Maybe, partition

ns_name_chars = re.compile(r"\w|-|\+|\*|\?|/|\=|\\|!|&|%|>|<|\$|:|\.")
alphanumeric_chars = re.compile(r"\w")
begin_num_chars = re.compile(r"[0-9\-]")
maybe_num_chars = re.compile(r"[0-9A-Za-z/\.]")
integer_literal = re.compile(r"(-?(?:\d|[1-9]\d+))")
float_literal = re.compile(r"(-?(?:\d|[1-9]\d+)(?:\.\d*)?)")
hex_literal = re.compile("-?0[Xx]([0-9A-Fa-f]+)")
octal_literal = re.compile("-?0([0-7]+)")
arbitrary_base_literal = re.compile(r"-?(\d{1,2})r([0-9A-Za-z]+)")
scientific_notation_literal = re.compile(r"-?(\d+(?:\.\d*)?)[Ee](-?\d+)")
whitespace_chars = re.compile(r"[\s,]")
newline_chars = re.compile("(\r\n|\r|\n)")
fn_macro_args = re.compile("(%)(&|[0-9])?")
unicode_char = re.compile(r"u(\w+)")

DataReaderFn = Callable[[Any], Any]
DataReaders = Mapping[sym.Symbol, DataReaderFn]
NamespaceResolver = Callable[[Optional[str]], Optional[str]]
LispReaderFn = Callable[["ReaderContext"], LispForm]
W = TypeVar("W", bound=LispReaderFn)

READER_LINE_KW = kw.keyword("line")
READER_COL_KW = kw.keyword("col")
READER_END_LINE_KW = kw.keyword("end-line")
READER_END_COL_KW = kw.keyword("end-col")

READER_TAG_KW = kw.keyword("tag")


_AMPERSAND = sym.symbol("&")
_DEREF = sym.symbol("deref")
_FN = sym.symbol("fn*")
_QUOTE = sym.symbol("quote")
_SYNTAX_QUOTE = sym.symbol("syntax-quote")
_UNQUOTE = sym.symbol("unquote")
_UNQUOTE_SPLICING = sym.symbol("unquote-splicing")


class Comment:
    pass


COMMENT = Comment()

LispReaderForm = Union[ReaderForm, Comment]


@attr.define(repr=False, str=False)
class ReadError(GlintError):
    message: str
    line: Optional[int] = None
    col: Optional[int] = None
    filename: Optional[str] = None

    def __repr__(self):
        return (
            f"glint.lang.reader.ReadError({self.message}, {self.line}, "
            f"{self.col}, filename={self.filename})"
        )

    def __str__(self):
        keys: dict[str, Union[str, int]] = {}
        if self.filename is not None:
            keys["file"] = self.filename
        if self.line is not None and self.col is not None:
            keys["line"] = self.line
            keys["col"] = self.col
        if not keys:
            return self.message
        details = ", ".join(f"{key}: {val}" for key, val in keys.items())
        return f"{self.message} ({details})"


@format_exception.register(ReadError)
def format_read_error(  # pylint: disable=unused-argument
    e: ReadError,
    tp: Optional[type[Exception]] = None,
    tb: Optional[TracebackType] = None,
    disable_color: Optional[bool] = None,
) -> list[str]:
    context_exc: Optional[BaseException] = e.__cause__

    lines = [os.linesep]
    if context_exc is not None:
        lines.append(f"  exception: {type(context_exc)} from {type(e)}{os.linesep}")
        lines.append(f"    message: {e.message}: {context_exc}{os.linesep}")
    else:
        lines.append(f"  exception: {type(e)}{os.linesep}")
        lines.append(f"    message: {e.message}{os.linesep}")

    if e.line is not None and e.col is not None:
        line_num = f"{e.line}:{e.col}"
    elif e.line is not None:
        line_num = str(e.line)
    else:
        line_num = ""

    if e.filename is not None:
        lines.append(
            f"   location: {e.filename}:{line_num or 'NO_SOURCE_LINE'}{os.linesep}"
        )
    elif line_num:
        lines.append(f"       line: {line_num}{os.linesep}")

    if (
        e.filename is not None
        and e.line is not None
        and (
            context_lines := format_source_context(
                e.filename, e.line, disable_color=disable_color
            )
        )
    ):
        lines.append(f"    context:{os.linesep}")
        lines.append(os.linesep)
        lines.extend(context_lines)

    return lines


class UnexpectedEOFError(ReadError):
    """Read error raised when the input ends in the middle of a form.

    The REPL uses this to tell incomplete input (which should prompt for another
    line) apart from malformed input."""


class StreamReader:
    """A character stream with a small pushback buffer which tracks the line and
    column of every character it hands out."""

    DEFAULT_INDEX = -2

    __slots__ = ("_stream", "_pushback_depth", "_idx", "_buffer", "_line", "_col")

    def __init__(
        self,
        stream: io.TextIOBase,
        pushback_depth: int = 5,
        init_line: Optional[int] = None,
        init_column: Optional[int] = None,
    ) -> None:
        self._stream = stream
        self._pushback_depth = pushback_depth
        self._idx = StreamReader.DEFAULT_INDEX
        self._line = collections.deque(
            [Maybe(init_line).or_else_get(1)], pushback_depth
        )
        self._col = collections.deque(
            [Maybe(init_column).or_else_get(0)], pushback_depth
        )
        self._buffer = collections.deque([self._stream.read(1)], pushback_depth)
        self._buffer.append(self._stream.read(1))
        self._update_loc()

    @property
    def name(self) -> Optional[str]:
        return getattr(self._stream, "name", None)

    @property
    def col(self) -> int:
        return self._col[self._idx]

    @property
    def line(self) -> int:
        return self._line[self._idx]

    def _update_loc(self):
        prev, cur = self._buffer[-2], self._buffer[-1]
        if prev == "\n" or (prev == "\r" and cur != "\n"):
            self._col.append(0)
            self._line.append(self._line[-1] + 1)
        else:
            self._col.append(self._col[-1] + 1)
            self._line.append(self._line[-1])

    def peek(self) -> str:
        """Return the current character without consuming it."""
        return self._buffer[self._idx]

    def pushback(self) -> None:
        """Step back one character so it will be returned by `peek` again."""
        if abs(self._idx - 1) > self._pushback_depth:
            raise IndexError("Exceeded pushback depth")
        self._idx -= 1

    def advance(self) -> str:
        """Consume the current character and return it."""
        cur = self.peek()
        self.next_char()
        return cur

    def next_char(self) -> str:
        """Move to the next character in the stream and return it."""
        if self._idx < StreamReader.DEFAULT_INDEX:
            self._idx += 1
        else:
            self._buffer.append(self._stream.read(1))
            self._update_loc()
        return self.peek()


def _tagged_collection(
    tag: sym.Symbol, allowed: tuple[type, ...]
) -> Callable[[Any], TaggedLiteral]:
    """Return a data reader which keeps `tag` attached to its form, for tags whose
    meaning is given by the analyzer rather than the reader."""

    def read_tagged(form):
        if not isinstance(form, allowed):
            names = " or ".join(t.__name__ for t in allowed)
            raise ReadError(f"#{tag} literal must be a {names}, not {type(form)}")
        return tagged_literal(tag, form)

    return read_tagged


def _default_ns_resolver(alias: Optional[str]) -> Optional[str]:
    if alias is None:
        return "user"
    return None


class ReaderContext:
    _DATA_READERS: DataReaders = lmap.map(
        {
            JSX_TAG: _tagged_collection(JSX_TAG, (vec.PersistentVector,)),
            JS_TAG: _tagged_collection(
                JS_TAG, (lmap.PersistentMap, vec.PersistentVector)
            ),
        }
    )

    __slots__ = (
        "_data_readers",
        "_reader",
        "_resolve_ns",
        "_in_anon_fn",
        "_syntax_quoted",
        "_eof",
    )

    def __init__(
        self,
        reader: StreamReader,
        ns_resolver: Optional[NamespaceResolver] = None,
        data_readers: Optional[DataReaders] = None,
        eof: Any = None,
    ) -> None:
        self._data_readers = Maybe(data_readers).or_else_get(lmap.EMPTY)
        self._reader = reader
        self._resolve_ns = Maybe(ns_resolver).or_else_get(_default_ns_resolver)
        self._in_anon_fn: collections.deque[bool] = collections.deque([])
        self._syntax_quoted: collections.deque[bool] = collections.deque([])
        self._eof = eof

    @property
    def data_readers(self) -> DataReaders:
        return self._data_readers

    @property
    def eof(self) -> Any:
        return self._eof

    @property
    def reader(self) -> StreamReader:
        return self._reader

    def resolve_ns(self, alias: Optional[str]) -> Optional[str]:
        """Return the full namespace name for `alias`, or for the current namespace
        if `alias` is None."""
        return self._resolve_ns(alias)

    @contextlib.contextmanager
    def in_anon_fn(self):
        self._in_anon_fn.append(True)
        yield
        self._in_anon_fn.pop()

    @property
    def is_in_anon_fn(self) -> bool:
        try:
            return self._in_anon_fn[-1] is True
        except IndexError:
            return False

    @contextlib.contextmanager
    def syntax_quoted(self):
        self._syntax_quoted.append(True)
        yield
        self._syntax_quoted.pop()

    @contextlib.contextmanager
    def unquoted(self):
        self._syntax_quoted.append(False)
        yield
        self._syntax_quoted.pop()

    @property
    def is_syntax_quoted(self) -> bool:
        try:
            return self._syntax_quoted[-1] is True
        except IndexError:
            return False

    def read_error(self, msg: str) -> ReadError:
        """Return a ReadError with the given message, hydrated with filename, line,
        and column metadata from the reader if it exists."""
        return ReadError(
            msg, line=self.reader.line, col=self.reader.col, filename=self.reader.name
        )

    def eof_error(self, msg: str) -> UnexpectedEOFError:
        return UnexpectedEOFError(
            msg, line=self.reader.line, col=self.reader.col, filename=self.reader.name
        )


EOF = object()


def _with_loc(f: W) -> W:
    """Wrap a reader function in a decorator to supply line and column
    information along with relevant forms."""

    @functools.wraps(f)
    def with_lineno_and_col(ctx, **kwargs):
        line, col = ctx.reader.line, ctx.reader.col
        v = f(ctx, **kwargs)
        end_line, end_col = ctx.reader.line, ctx.reader.col
        if isinstance(v, IWithMeta):
            new_meta = lmap.map(
                {
                    READER_LINE_KW: line,
                    READER_COL_KW: col,
                    READER_END_LINE_KW: end_line,
                    READER_END_COL_KW: end_col,
                }
            )
            old_meta = v.meta
            return v.with_meta(
                old_meta.cons(new_meta) if old_meta is not None else new_meta
            )
        return v

    return cast(W, with_lineno_and_col)


def _read_namespaced(
    ctx: ReaderContext, allowed_suffix: Optional[str] = None
) -> tuple[Optional[str], str]:
    """Read a namespaced token (keyword or symbol) from the input stream."""
    ns: list[str] = []
    name: list[str] = []
    reader = ctx.reader
    has_ns = False
    while True:
        char = reader.peek()
        if char == "/":
            reader.next_char()
            if has_ns:
                raise ctx.read_error("Found '/'; expected word character")
            elif len(name) == 0:
                name.append("/")
            else:
                if "/" in name:
                    raise ctx.read_error("Found '/' after a previous '/'")
                has_ns = True
                ns = name
                name = []
        elif ns_name_chars.match(char) or (name and char == "'") or char == "#":
            reader.next_char()
            name.append(char)
        elif allowed_suffix is not None and char == allowed_suffix:
            reader.next_char()
            name.append(char)
        else:
            break

    ns_str = None if not has_ns else "".join(ns)
    name_str = "".join(name)

    # `/` alone names the division function
    if ns_str is None and "/" in name_str and name_str != "/":
        raise ctx.read_error("'/' character disallowed in names")

    return ns_str, name_str


def _read_coll(
    ctx: ReaderContext,
    f: Callable[[Collection[Any]], Any],
    end_char: str,
    coll_name: str,
):
    """Read a collection from the input stream and create the
    collection using f."""
    coll: list = []
    reader = ctx.reader
    while True:
        char = reader.peek()
        if char == "":
            raise ctx.eof_error(f"Unexpected EOF in {coll_name}")
        if whitespace_chars.match(char):
            reader.advance()
            continue
        if char == end_char:
            reader.next_char()
            return f(coll)
        elem = _read_next(ctx)
        if isinstance(elem, Comment):
            continue
        coll.append(elem)


@_with_loc
def _read_list(ctx: ReaderContext) -> llist.PersistentList:
    start = ctx.reader.advance()
    assert start == "("
    return _read_coll(ctx, llist.list, ")", "list")


@_with_loc
def _read_vector(ctx: ReaderContext) -> vec.PersistentVector:
    start = ctx.reader.advance()
    assert start == "["
    return _read_coll(ctx, vec.vector, "]", "vector")


@_with_loc
def _read_set(ctx: ReaderContext) -> lset.PersistentSet:
    start = ctx.reader.advance()
    assert start == "{"

    def set_if_valid(s: Collection) -> lset.PersistentSet:
        if len(s) != len(set(s)):
            dupes = ", ".join(
                lrepr(k) for k, v in collections.Counter(s).items() if v > 1
            )
            raise ctx.read_error(f"Duplicated values in set: {dupes}")
        return lset.set(s)

    return _read_coll(ctx, set_if_valid, "}", "set")


@_with_loc
def _read_map(ctx: ReaderContext) -> lmap.PersistentMap:
    start = ctx.reader.advance()
    assert start == "{"

    elems = _read_coll(ctx, list, "}", "map")
    if len(elems) % 2 != 0:
        raise ctx.read_error("Unexpected char '}'; expected map value")

    entries: dict[Any, Any] = {}
    for k, v in partition(elems, 2):
        try:
            if k in entries:
                raise ctx.read_error(f"Duplicate key '{lrepr(k)}' in map literal")
        except TypeError as e:
            raise ctx.read_error("Map keys must be hashable") from e
        entries[k] = v
    return lmap.map(entries)


# `nil`, `true`, and `false` are read by the symbol reader, so the symbol and number
# readers return this looser type.
MaybeSymbol = Union[bool, None, sym.Symbol]
MaybeNumber = Union[float, int, MaybeSymbol]


def _read_num(ctx: ReaderContext) -> MaybeNumber:
    """Return a number from the input stream, or a symbol if a leading `-` turns
    out not to begin a number."""
    chars: list[str] = []
    reader = ctx.reader

    while True:
        char = reader.peek()
        if char == "-":
            following_char = reader.next_char()
            if not begin_num_chars.match(following_char):
                reader.pushback()
                try:
                    for _ in chars:
                        reader.pushback()
                except IndexError as e:
                    raise ctx.read_error(
                        "Requested to pushback too many characters onto StreamReader"
                    ) from e
                return _read_sym(ctx)
            chars.append(char)
            continue
        elif not maybe_num_chars.match(char):
            break
        reader.next_char()
        chars.append(char)

    assert len(chars) > 0, "Must have at least one digit in number"

    s = "".join(chars)
    neg = s.startswith("-")

    if (match := integer_literal.fullmatch(s)) is not None:
        return int(match.group(1))
    elif (match := float_literal.fullmatch(s)) is not None:
        return float(match.group(1))
    elif (match := hex_literal.fullmatch(s)) is not None:
        v = int(match.group(1), base=16)
        return -v if neg else v
    elif (match := octal_literal.fullmatch(s)) is not None:
        v = int(match.group(1), base=8)
        return -v if neg else v
    elif (match := scientific_notation_literal.fullmatch(s)) is not None:
        sig = float(m) if "." in (m := match.group(1)) else int(m)
        res = sig * (10 ** int(match.group(2)))
        return -res if neg else res
    elif (match := arbitrary_base_literal.fullmatch(s)) is not None:
        base = int(match.group(1))
        if not 2 <= base <= 36:
            raise ctx.read_error(
                f"Invalid base {base} for integer literal {s}: must be between 2 and 36"
            )
        try:
            v = int(match.group(2), base=base)
        except ValueError as e:
            raise ctx.read_error(f"Invalid number format: {s}") from e
        return -v if neg else v
    raise ctx.read_error(f"Invalid number format: {s}")


_STR_ESCAPE_CHARS = {
    '"': '"',
    "\\": "\\",
    "a": "\a",
    "b": "\b",
    "f": "\f",
    "n": "\n",
    "r": "\r",
    "t": "\t",
    "v": "\v",
}


def _read_str(ctx: ReaderContext, allow_arbitrary_escapes: bool = False) -> str:
    """Return a string from the input stream.

    If allow_arbitrary_escapes is True, unknown escape sequences are kept verbatim
    instead of failing the read."""
    s: list[str] = []
    reader = ctx.reader
    while True:
        char = reader.next_char()
        if char == "":
            raise ctx.eof_error("Unexpected EOF in string")
        if char == "\\":
            char = reader.next_char()
            escape_char = _STR_ESCAPE_CHARS.get(char, None)
            if escape_char:
                s.append(escape_char)
                continue
            if allow_arbitrary_escapes:
                s.append("\\")
            else:
                raise ctx.read_error(f"Unknown escape sequence: \\{char}")
        if char == '"':
            reader.next_char()
            return "".join(s)
        s.append(char)


@_with_loc
def _read_sym(ctx: ReaderContext) -> MaybeSymbol:
    """Return a symbol from the input stream.

    Symbols ending in `#` are auto-gensyms and may only appear inside a syntax
    quote."""
    ns, name = _read_namespaced(ctx, allowed_suffix="#")
    if not ctx.is_syntax_quoted and name.endswith("#"):
        raise ctx.read_error("Gensym may not appear outside syntax quote")
    if ns is not None:
        if any(len(s) == 0 for s in ns.split(".")):
            raise ctx.read_error(
                "All '.' separated segments of a namespace "
                "must contain at least one character."
            )
    if ns is None:
        if name == "nil":
            return None
        elif name == "true":
            return True
        elif name == "false":
            return False
    return sym.symbol(name, ns=ns)


def _read_kw(ctx: ReaderContext) -> kw.Keyword:
    """Return a keyword from the input stream.

    Keywords written with a double colon are qualified with the current namespace,
    or with the namespace named by their alias (as `::alias/name`)."""
    start = ctx.reader.advance()
    assert start == ":"
    if ctx.reader.peek() == ":":
        ctx.reader.advance()
        should_autoresolve = True
    else:
        should_autoresolve = False
    ns, name = _read_namespaced(ctx)
    if not name:
        raise ctx.read_error("Keyword must have a name")
    if should_autoresolve:
        resolved_ns = ctx.resolve_ns(ns)
        if resolved_ns is None:
            raise ctx.read_error(f"Cannot resolve namespace alias '{ns}'")
        return kw.keyword(name, ns=resolved_ns)
    return kw.keyword(name, ns=ns)


def _read_meta(ctx: ReaderContext) -> IMeta:
    """Read metadata and apply that to the next object in the
    input stream."""
    start = ctx.reader.advance()
    assert start == "^"
    meta = _read_next_consuming_comment(ctx)
    meta_map: Optional[lmap.PersistentMap]
    if isinstance(meta, sym.Symbol):
        meta_map = lmap.map({READER_TAG_KW: meta})
    elif isinstance(meta, kw.Keyword):
        meta_map = lmap.map({meta: True})
    elif isinstance(meta, lmap.PersistentMap):
        meta_map = meta
    else:
        raise ctx.read_error(
            f"Expected symbol, keyword, or map for metadata, not {type(meta)}"
        )
    obj_with_meta = _read_next_consuming_comment(ctx)
    if isinstance(obj_with_meta, IWithMeta):
        new_meta = (
            obj_with_meta.meta.cons(meta_map)
            if obj_with_meta.meta is not None
            else meta_map
        )
        return obj_with_meta.with_meta(new_meta)
    raise ctx.read_error(
        f"Can not attach metadata to object of type {type(obj_with_meta)}"
    )


@functools.singledispatch
def _walk(form, _, outer_f):
    """Walk an arbitrary, possibly nested form, applying inner_f to each
    element of form and then applying outer_f to the resulting form."""
    return outer_f(form)


@_walk.register(llist.PersistentList)
def _walk_list(form: llist.PersistentList, inner_f, outer_f):
    return outer_f(llist.list(map(inner_f, form), meta=form.meta))


@_walk.register(vec.PersistentVector)
def _walk_vector(form: vec.PersistentVector, inner_f, outer_f):
    return outer_f(vec.vector(map(inner_f, form), meta=form.meta))


@_walk.register(lmap.PersistentMap)
def _walk_map(form: lmap.PersistentMap, inner_f, outer_f):
    return outer_f(
        lmap.from_entries(
            ((inner_f(k), inner_f(v)) for k, v in form.items()), meta=form.meta
        )
    )


@_walk.register(lset.PersistentSet)
def _walk_set(form: lset.PersistentSet, inner_f, outer_f):
    return outer_f(lset.set(map(inner_f, form), meta=form.meta))


def _postwalk(f, form):
    """Walk form using depth-first, post-order traversal, applying f to each form
    and replacing form with its result."""
    inner_f = functools.partial(_postwalk, f)
    return _walk(form, inner_f, f)


@_with_loc
def _read_function(ctx: ReaderContext) -> llist.PersistentList:
    """Read an anonymous function literal `#(...)`, replacing `%`, `%n`, and `%&`
    with generated argument names."""
    if ctx.is_in_anon_fn:
        raise ctx.read_error("Nested #() definitions not allowed")

    with ctx.in_anon_fn():
        form = _read_list(ctx)
    arg_set = set()

    def arg_suffix(arg_num: Optional[str]) -> str:
        if arg_num is None:
            return "1"
        elif arg_num == "&":
            return "rest"
        return arg_num

    def sym_replacement(arg_num: Optional[str]) -> sym.Symbol:
        return sym.symbol(f"arg-{arg_suffix(arg_num)}")

    def identify_and_replace(f):
        if isinstance(f, sym.Symbol) and f.ns is None:
            match = fn_macro_args.fullmatch(f.name)
            if match is not None:
                arg_num = match.group(2)
                arg_set.add(arg_suffix(arg_num))
                return sym_replacement(arg_num)
        return f

    body = _postwalk(identify_and_replace, form) if len(form) > 0 else None

    arg_list: list[sym.Symbol] = []
    numbered_args = sorted(map(int, filter(lambda k: k != "rest", arg_set)))
    if len(numbered_args) > 0:
        max_arg = max(numbered_args)
        arg_list = [sym_replacement(str(i)) for i in range(1, max_arg + 1)]
    if "rest" in arg_set:
        arg_list.append(_AMPERSAND)
        arg_list.append(sym_replacement("&"))

    return llist.l(_FN, vec.vector(arg_list), body)


@_with_loc
def _read_quoted(ctx: ReaderContext) -> llist.PersistentList:
    start = ctx.reader.advance()
    assert start == "'"
    next_form = _read_next_consuming_comment(ctx)
    return llist.l(_QUOTE, next_form)


@_with_loc
def _read_syntax_quoted(ctx: ReaderContext) -> llist.PersistentList:
    """Read a syntax-quoted form as `(syntax-quote form)`.

    Syntax quotes are returned as plain forms. Expanding them into the forms which
    build the quoted structure is left to the macro evaluator."""
    start = ctx.reader.advance()
    assert start == "`"
    with ctx.syntax_quoted():
        return llist.l(_SYNTAX_QUOTE, _read_next_consuming_comment(ctx))


@_with_loc
def _read_unquote(ctx: ReaderContext) -> llist.PersistentList:
    """Read an unquoted form.

    `~form` is read as `(unquote form)` and `~@form` is read as
    `(unquote-splicing form)`."""
    start = ctx.reader.advance()
    assert start == "~"
    with ctx.unquoted():
        if ctx.reader.peek() == "@":
            ctx.reader.advance()
            return llist.l(_UNQUOTE_SPLICING, _read_next_consuming_comment(ctx))
        return llist.l(_UNQUOTE, _read_next_consuming_comment(ctx))


@_with_loc
def _read_deref(ctx: ReaderContext) -> llist.PersistentList:
    start = ctx.reader.advance()
    assert start == "@"
    next_form = _read_next_consuming_comment(ctx)
    return llist.l(_DEREF, next_form)


_SPECIAL_CHARS = {
    "newline": "\n",
    "space": " ",
    "tab": "\t",
    "formfeed": "\f",
    "backspace": "\b",
    "return": "\r",
}


def _read_character(ctx: ReaderContext) -> str:
    """Read a character literal from the input stream.

    Characters have no representation of their own in JavaScript, so they are read
    as single character strings:
      - \\a \\$ \\[ etc will yield 'a', '$', and '[' respectively
      - \\newline, \\space, \\tab, \\formfeed, \\backspace, \\return yield
        the named characters
      - \\uXXXX yield the unicode character with the code point XXXX"""
    start = ctx.reader.advance()
    assert start == "\\"

    s: list[str] = []
    reader = ctx.reader
    char = reader.peek()
    is_first_char = True
    while True:
        if char == "" or (not is_first_char and not alphanumeric_chars.match(char)):
            break
        s.append(char)
        char = reader.next_char()
        is_first_char = False

    character = "".join(s)
    if not character:
        raise ctx.eof_error("Unexpected EOF in character literal")
    special = _SPECIAL_CHARS.get(character, None)
    if special is not None:
        return special

    match = unicode_char.fullmatch(character)
    if match is not None:
        try:
            return chr(int(f"0x{match.group(1)}", 16))
        except (ValueError, OverflowError):
            raise ctx.read_error(f"Unsupported character \\{character}") from None

    if len(character) > 1:
        raise ctx.read_error(f"Unsupported character \\{character}")

    return character


def _read_regex(ctx: ReaderContext) -> Pattern:
    s = _read_str(ctx, allow_arbitrary_escapes=True)
    try:
        return langutil.regex_from_str(s)
    except re.error as e:
        raise ctx.read_error(f"Unrecognized regex pattern syntax: {s}") from e


_NUMERIC_CONSTANTS = {
    "NaN": float("nan"),
    "Inf": float("inf"),
    "-Inf": -float("inf"),
}


def _read_numeric_constant(ctx: ReaderContext) -> float:
    start = ctx.reader.advance()
    assert start == "#"
    ns, name = _read_namespaced(ctx)
    if ns is not None:
        raise ctx.read_error(f"Unrecognized numeric constant: '##{ns}/{name}'")
    c = _NUMERIC_CONSTANTS.get(name)
    if c is None:
        raise ctx.read_error(f"Unrecognized numeric constant: '##{name}'")
    return c


def _resolve_tagged_literal(
    ctx: ReaderContext, s: sym.Symbol, v: ReaderForm
) -> LispReaderForm:
    """Resolve a tagged literal into whatever value is returned by the data reader
    registered for its tag."""
    data_reader = ctx.data_readers.get(s) or ReaderContext._DATA_READERS.get(s)
    if data_reader is None:
        raise ctx.read_error(f"No data reader found for tag #{s}")
    try:
        return data_reader(v)
    except ReadError as e:
        raise ctx.read_error(e.message).with_traceback(e.__traceback__) from None


def _read_reader_macro(ctx: ReaderContext) -> LispReaderForm:
    """Return a form produced by a `#` dispatch reader macro."""
    start = ctx.reader.advance()
    assert start == "#"
    char = ctx.reader.peek()
    if char == "{":
        return _read_set(ctx)
    elif char == "(":
        return _read_function(ctx)
    elif char == '"':
        return _read_regex(ctx)
    elif char == "_":
        ctx.reader.advance()
        _read_next_consuming_comment(ctx)  # Ignore the entire next form
        return COMMENT
    elif char == "!":
        return _read_comment(ctx)
    elif char == "#":
        return _read_numeric_constant(ctx)
    elif ns_name_chars.match(char):
        s = _read_sym(ctx)
        if not isinstance(s, sym.Symbol):
            raise ctx.read_error(f"Invalid reader tag '{lrepr(s)}'")
        v = _read_next_consuming_comment(ctx)
        if v is ctx.eof:
            raise ctx.eof_error(f"Unexpected EOF in #{s} tagged literal")
        return _resolve_tagged_literal(ctx, s, v)

    raise ctx.read_error(f"Unexpected char '{char}' in reader macro")


def _read_comment(ctx: ReaderContext) -> LispReaderForm:
    """Read (and ignore) a single-line comment from the input stream."""
    reader = ctx.reader
    start = reader.advance()
    assert start in {";", "!"}
    while True:
        char = reader.peek()
        if newline_chars.match(char):
            reader.advance()
            return COMMENT
        if char == "":
            return ctx.eof
        reader.advance()


def _read_next_consuming_comment(ctx: ReaderContext) -> ReaderForm:
    """Read the next full form from the input stream, consuming any
    reader comments completely."""
    while True:
        v = _read_next(ctx)
        if v is ctx.eof:
            return ctx.eof
        if isinstance(v, Comment):
            continue
        return v


def _read_next_consuming_whitespace(ctx: ReaderContext) -> LispReaderForm:
    reader = ctx.reader
    char = reader.peek()
    while whitespace_chars.match(char):
        char = reader.next_char()
    return _read_next(ctx)


def _read_next(ctx: ReaderContext) -> LispReaderForm:  # noqa: C901
    """Read the next full form from the input stream."""
    reader = ctx.reader
    char = reader.peek()
    if char == "(":
        return _read_list(ctx)
    elif char == "[":
        return _read_vector(ctx)
    elif char == "{":
        return _read_map(ctx)
    elif begin_num_chars.match(char):
        return _read_num(ctx)
    elif whitespace_chars.match(char):
        return _read_next_consuming_whitespace(ctx)
    elif char == ":":
        return _read_kw(ctx)
    elif char == '"':
        return _read_str(ctx)
    elif char == "'":
        return _read_quoted(ctx)
    elif char == "\\":
        return _read_character(ctx)
    elif ns_name_chars.match(char):
        return _read_sym(ctx)
    elif char == "#":
        return _read_reader_macro(ctx)
    elif char == "^":
        return _read_meta(ctx)  # type: ignore
    elif char == ";":
        return _read_comment(ctx)
    elif char == "`":
        return _read_syntax_quoted(ctx)
    elif char == "~":
        return _read_unquote(ctx)
    elif char == "@":
        return _read_deref(ctx)
    elif char == "":
        return ctx.eof
    elif char in {")", "]", "}"}:
        raise ctx.read_error(f"Unmatched delimiter '{char}'")
    raise ctx.read_error(f"Unexpected char '{char}'")


def read(
    stream,
    ns_resolver: Optional[NamespaceResolver] = None,
    data_readers: Optional[DataReaders] = None,
    eof: Any = EOF,
    init_line: Optional[int] = None,
    init_column: Optional[int] = None,
) -> Iterable[ReaderForm]:
    """Read the contents of a stream as a sequence of forms.

    Forms are read lazily, one top-level form per iteration, so a caller may act on
    each form (for instance, by processing an `ns` declaration) before the next form
    is read. Reading stops at the end of the stream.

    Callers may optionally specify a namespace resolver, which is used to qualify
    keywords written as `::name` or `::alias/name`. The resolver is called with the
    alias (or None for the current namespace) and should return the full namespace
    name, or None if the alias is unknown.

    Callers may optionally specify a map of data readers, keyed by tag symbol, used
    to resolve tagged literals in addition to the built-in `#jsx` and `#js` tags.
    Data reader functions take the tagged form and return the value to read.

    The caller is responsible for closing the input stream."""
    reader = StreamReader(stream, init_line=init_line, init_column=init_column)
    ctx = ReaderContext(
        reader, ns_resolver=ns_resolver, data_readers=data_readers, eof=eof
    )
    while True:
        expr = _read_next(ctx)
        if expr is ctx.eof:
            return
        if isinstance(expr, Comment):
            continue
        yield expr


def read_str(
    s: str,
    ns_resolver: Optional[NamespaceResolver] = None,
    data_readers: Optional[DataReaders] = None,
    eof: Any = EOF,
    init_line: Optional[int] = None,
    init_column: Optional[int] = None,
) -> Iterable[ReaderForm]:
    """Read the contents of a string as a sequence of forms.

    Keyword arguments to this function have the same meanings as those of
    glint.lang.reader.read."""
    with io.StringIO(s) as buf:
        yield from read(
            buf,
            ns_resolver=ns_resolver,
            data_readers=data_readers,
            eof=eof,
            init_line=init_line,
            init_column=init_column,
        )


def read_file(
    filename: str,
    ns_resolver: Optional[NamespaceResolver] = None,
    data_readers: Optional[DataReaders] = None,
    eof: Any = EOF,
) -> Iterable[ReaderForm]:
    """Read the contents of a file as a sequence of forms.

    Keyword arguments to this function have the same meanings as those of
    glint.lang.reader.read."""
    with open(filename, encoding="utf-8") as f:
        yield from read(f, ns_resolver=ns_resolver, data_readers=data_readers, eof=eof)
