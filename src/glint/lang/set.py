from collections.abc import Iterable
from collections.abc import Set as _PySet
from typing import AbstractSet, Optional, TypeVar

from immutables import Map as _Map
from pyrsistent import PVector, pvector
from typing_extensions import Unpack

from glint.lang.interfaces import (
    ILispObject,
    IPersistentMap,
    IPersistentSet,
    IWithMeta,
)
from glint.lang.obj import PrintSettings
from glint.lang.obj import seq_lrepr as _seq_lrepr

T = TypeVar("T")


class PersistentSet(IPersistentSet[T], ILispObject, IWithMeta):
    """glint Set form. Delegates internally to a immutables.Map object, with the
    order of first insertion kept in a pyrsistent.PVector so set literals emit
    their members in source order.

    Do not instantiate directly. Instead use the s() and set() factory
    methods below."""

    __slots__ = ("_inner", "_order", "_meta")

    def __init__(
        self,
        m: "_Map[T, T]",
        order: "PVector[T]",
        meta: Optional[IPersistentMap] = None,
    ) -> None:
        self._inner = m
        self._order = order
        self._meta = meta

    @classmethod
    def from_iterable(
        cls, members: Optional[Iterable[T]], meta: Optional[IPersistentMap] = None
    ) -> "PersistentSet":
        return EMPTY.cons(*(members or ())).with_meta(meta)

    _from_iterable = from_iterable

    def __bool__(self):
        return True

    def __call__(self, key, default=None):
        if key in self:
            return key
        return default

    def __contains__(self, item):
        return item in self._inner

    def __eq__(self, other):
        if self is other:
            return True
        if not isinstance(other, AbstractSet):
            return NotImplemented
        return _PySet.__eq__(self, other)

    def __hash__(self):
        return self._hash()

    def __iter__(self):
        yield from self._order

    def __len__(self):
        return len(self._inner)

    def _lrepr(self, **kwargs: Unpack[PrintSettings]):
        return _seq_lrepr(self._order, "#{", "}", meta=self._meta, **kwargs)

    @property
    def meta(self) -> Optional[IPersistentMap]:
        return self._meta

    def with_meta(self, meta: Optional[IPersistentMap]) -> "PersistentSet[T]":
        return PersistentSet(self._inner, self._order, meta=meta)

    def cons(self, *elems: T) -> "PersistentSet[T]":
        m = self._inner.mutate()
        order = self._order.evolver()
        for elem in elems:
            if elem not in m:
                order.append(elem)
            m[elem] = elem
        return PersistentSet(m.finish(), order.persistent(), meta=self._meta)

    def disj(self, *elems: T) -> "PersistentSet[T]":
        m = self._inner.mutate()
        for elem in elems:
            if elem in m:
                del m[elem]
        remaining = m.finish()
        return PersistentSet(
            remaining,
            pvector(e for e in self._order if e in remaining),
            meta=self._meta,
        )


EMPTY: PersistentSet = PersistentSet(_Map(), pvector())


def set(  # pylint:disable=redefined-builtin
    members: Iterable[T], meta: Optional[IPersistentMap] = None
) -> PersistentSet[T]:
    """Creates a new set."""
    return PersistentSet.from_iterable(members, meta=meta)


def s(*members: T, meta: Optional[IPersistentMap] = None) -> PersistentSet[T]:
    """Creates a new set from members."""
    return PersistentSet.from_iterable(members, meta=meta)
