from typing import Optional, TypeVar

from pyrsistent import PList, plist  # noqa # pylint: disable=unused-import
from typing_extensions import Unpack

from glint.lang.interfaces import (
    ILispObject,
    IPersistentList,
    IPersistentMap,
    IWithMeta,
)
from glint.lang.obj import PrintSettings
from glint.lang.obj import seq_lrepr as _seq_lrepr

T = TypeVar("T")


class PersistentList(IPersistentList[T], ILispObject, IWithMeta):
    """glint List form. Delegates internally to a pyrsistent.PList object.

    Do not instantiate directly. Instead use the l() and list() factory
    methods below."""

    __slots__ = ("_inner", "_meta")

    def __init__(self, wrapped: "PList[T]", meta=None) -> None:
        self._inner = wrapped
        self._meta = meta

    def __bool__(self):
        return True

    def __eq__(self, other):
        if self is other:
            return True
        if not isinstance(other, PersistentList):
            return False
        return len(self) == len(other) and all(
            a == b for a, b in zip(self._inner, other._inner)
        )

    def __getitem__(self, item):
        if isinstance(item, slice):
            return PersistentList(plist(tuple(self._inner)[item]))
        if item < 0:
            return tuple(self._inner)[item]
        for i, elem in enumerate(self._inner):
            if i == item:
                return elem
        raise IndexError("list index out of range")

    def __hash__(self):
        return hash(tuple(self._inner))

    def __iter__(self):
        yield from self._inner

    def __len__(self):
        return len(self._inner)

    def _lrepr(self, **kwargs: Unpack[PrintSettings]) -> str:
        return _seq_lrepr(self._inner, "(", ")", meta=self._meta, **kwargs)

    @property
    def meta(self) -> Optional[IPersistentMap]:
        return self._meta

    def with_meta(self, meta: Optional[IPersistentMap]) -> "PersistentList":
        return PersistentList(self._inner, meta=meta)

    @property
    def is_empty(self) -> bool:
        return len(self._inner) == 0

    @property
    def first(self):
        try:
            return self._inner.first
        except AttributeError:
            return None

    @property
    def rest(self) -> "PersistentList[T]":
        if self.is_empty:
            return EMPTY
        return PersistentList(self._inner.rest)

    def cons(self, *elems: T) -> "PersistentList[T]":
        l = self._inner
        for elem in elems:
            l = l.cons(elem)
        return PersistentList(l, meta=self._meta)


EMPTY: PersistentList = PersistentList(plist())


def list(members, meta=None) -> PersistentList:  # pylint:disable=redefined-builtin
    """Creates a new list."""
    return PersistentList(plist(iterable=members), meta=meta)


def l(*members, meta=None) -> PersistentList:  # noqa
    """Creates a new list from members."""
    return PersistentList(plist(iterable=members), meta=meta)
