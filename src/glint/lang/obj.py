"""Printing forms back in the syntax they were read from.

Compiler errors, macro expansion traces and the REPL show forms to the user with
:py:func:`lrepr`. Printing is for people, so no printed form is required to read
back to an identical form."""

import math
from abc import ABC, abstractmethod
from collections.abc import Iterable
from functools import singledispatch
from re import Pattern
from typing import Any, Optional

from typing_extensions import TypedDict, Unpack

PRINT_META = False
PRINT_SEPARATOR = " "


class PrintSettings(TypedDict, total=False):
    human_readable: bool
    print_meta: bool


class LispObject(ABC):
    """Base class for forms which print themselves in reader syntax.

    .. note::

       Callers should use :py:class:`glint.lang.interfaces.ILispObject`. The class is
       defined here so :py:func:`lrepr` can dispatch on it without a circular
       import."""

    __slots__ = ()

    def __repr__(self):
        return self.lrepr()

    def __str__(self):
        return self.lrepr(human_readable=True)

    @abstractmethod
    def _lrepr(self, **kwargs: Unpack[PrintSettings]) -> str:
        raise NotImplementedError()

    def lrepr(self, **kwargs: Unpack[PrintSettings]) -> str:
        return lrepr(self, **kwargs)


def with_meta_prefix(
    text: str, meta: Optional[Any], **kwargs: Unpack[PrintSettings]
) -> str:
    """Prefix `text` with `meta` in `^{...}` syntax if metadata printing is on."""
    if kwargs.get("print_meta", PRINT_META) and meta:
        return f"^{lrepr(meta, **kwargs)} {text}"
    return text


def seq_lrepr(
    iterable: Iterable[Any],
    start: str,
    end: str,
    meta=None,
    **kwargs: Unpack[PrintSettings],
) -> str:
    """Print the elements of a collection form between `start` and `end`.

    Elements are always printed readably, even when the collection is not."""
    elem_kwargs = PrintSettings(kwargs, human_readable=False)
    elems = PRINT_SEPARATOR.join(lrepr(o, **elem_kwargs) for o in iterable)
    return with_meta_prefix(f"{start}{elems}{end}", meta, **kwargs)


@singledispatch
def lrepr(o: Any, **_: Unpack[PrintSettings]) -> str:
    """Return the reader syntax for the form `o`.

    `human_readable` prints strings without quotes or escapes. `print_meta` prefixes
    forms carrying metadata with their metadata map."""
    return repr(o)


@lrepr.register(LispObject)
def _lrepr_lisp_obj(o: LispObject, **kwargs: Unpack[PrintSettings]) -> str:
    return o._lrepr(**kwargs)


@lrepr.register(bool)
def _lrepr_bool(o: bool, **_) -> str:
    return "true" if o else "false"


@lrepr.register(type(None))
def _lrepr_nil(_: None, **__) -> str:
    return "nil"


@lrepr.register(str)
def _lrepr_str(o: str, human_readable: bool = False, **_) -> str:
    if human_readable:
        return o
    escaped = o.encode("unicode_escape").replace(b'"', rb"\"").decode("utf-8")
    return f'"{escaped}"'


@lrepr.register(float)
def _lrepr_float(o: float, **_) -> str:
    if math.isnan(o):
        return "##NaN"
    if math.isinf(o):
        return "##Inf" if o > 0 else "##-Inf"
    return repr(o)


@lrepr.register(Pattern)
def _lrepr_pattern(o: Pattern, **_) -> str:
    return f'#"{o.pattern}"'
