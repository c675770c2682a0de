from collections.abc import Iterable
from typing import Optional, TypeVar, Union, overload

from pyrsistent import PVector, pvector  # noqa # pylint: disable=unused-import
from typing_extensions import Unpack

from glint.lang.interfaces import (
    ILispObject,
    IPersistentMap,
    IPersistentVector,
    IWithMeta,
)
from glint.lang.obj import PrintSettings
from glint.lang.obj import seq_lrepr as _seq_lrepr

T = TypeVar("T")


class PersistentVector(IPersistentVector[T], ILispObject, IWithMeta):
    """glint Vector form. Delegates internally to a pyrsistent.PVector object.
    Do not instantiate directly. Instead use the v() and vector() factory
    methods below."""

    __slots__ = ("_inner", "_meta")

    def __init__(
        self, wrapped: "PVector[T]", meta: Optional[IPersistentMap] = None
    ) -> None:
        self._inner = wrapped
        self._meta = meta

    def __bool__(self):
        return True

    def __contains__(self, item):
        return item in self._inner

    def __eq__(self, other):
        if self is other:
            return True
        if not isinstance(other, PersistentVector):
            return False
        return self._inner == other._inner

    @overload
    def __getitem__(self, item: int) -> T: ...

    @overload
    def __getitem__(self, item: slice) -> "PersistentVector[T]": ...

    def __getitem__(self, item: Union[slice, int]) -> Union[T, "PersistentVector[T]"]:
        if isinstance(item, slice):
            return PersistentVector(self._inner[item])
        return self._inner[item]

    def __hash__(self):
        return hash(self._inner)

    def __iter__(self):
        yield from self._inner

    def __len__(self):
        return len(self._inner)

    def _lrepr(self, **kwargs: Unpack[PrintSettings]) -> str:
        return _seq_lrepr(self._inner, "[", "]", meta=self._meta, **kwargs)

    @property
    def meta(self) -> Optional[IPersistentMap]:
        return self._meta

    def with_meta(self, meta: Optional[IPersistentMap]) -> "PersistentVector[T]":
        return vector(self._inner, meta=meta)

    def cons(self, *elems: T) -> "PersistentVector[T]":
        return PersistentVector(self._inner.extend(elems), meta=self._meta)


EMPTY: PersistentVector = PersistentVector(pvector())


def vector(
    members: Iterable[T], meta: Optional[IPersistentMap] = None
) -> PersistentVector[T]:
    """Creates a new vector."""
    return PersistentVector(pvector(members), meta=meta)


def v(*members: T, meta: Optional[IPersistentMap] = None) -> PersistentVector[T]:
    """Creates a new vector from members."""
    return PersistentVector(pvector(members), meta=meta)
