from abc import ABC, abstractmethod
from collections.abc import Iterable, Mapping, Sequence
from typing import AbstractSet, Generic, Optional, TypeVar

from typing_extensions import Self

from glint.lang.obj import LispObject as _LispObject

T = TypeVar("T")
K = TypeVar("K")
V = TypeVar("V")


class IMeta(ABC):
    """``IMeta`` types can optionally include a map of metadata.

    Forms are immutable, so metadata cannot be changed in place. Types which also
    implement :py:class:`IWithMeta` can create a copy of themselves carrying new
    metadata."""

    __slots__ = ()

    @property
    @abstractmethod
    def meta(self) -> Optional["IPersistentMap"]:
        raise NotImplementedError()


class IWithMeta(IMeta):
    """``IWithMeta`` are :py:class:`IMeta` types which can create copies of themselves
    with new metadata."""

    __slots__ = ()

    @abstractmethod
    def with_meta(self, meta: "Optional[IPersistentMap]") -> Self:
        raise NotImplementedError()


class INamed(ABC):
    """``INamed`` instances are symbolic identifiers with a name and optional
    namespace."""

    __slots__ = ()

    @property
    @abstractmethod
    def name(self) -> str:
        raise NotImplementedError()

    @property
    @abstractmethod
    def ns(self) -> Optional[str]:
        raise NotImplementedError()


ILispObject = _LispObject


class ILookup(Generic[K, V], ABC):
    __slots__ = ()

    @abstractmethod
    def val_at(self, k: K, default: Optional[V] = None) -> Optional[V]:
        raise NotImplementedError()


class IPersistentCollection(Iterable[T], ABC):
    """``IPersistentCollection`` types are immutable collections which return a new
    copy of themselves when elements are added."""

    __slots__ = ()

    @abstractmethod
    def cons(self, *elems: T) -> Self:
        raise NotImplementedError()


class IPersistentList(IPersistentCollection[T], ABC):
    __slots__ = ()

    @property
    @abstractmethod
    def first(self) -> Optional[T]:
        raise NotImplementedError()

    @property
    @abstractmethod
    def rest(self) -> "IPersistentList[T]":
        raise NotImplementedError()


class IPersistentVector(Sequence[T], IPersistentCollection[T], ABC):
    __slots__ = ()


class IPersistentMap(Mapping[K, V], ILookup[K, V], ABC):
    """``IPersistentMap`` types are immutable associative collections.

    Map forms produced by the reader preserve the insertion order of their keys,
    since the order of keys in a map literal is observable in emitted code."""

    __slots__ = ()

    @abstractmethod
    def assoc(self, *kvs) -> Self:
        raise NotImplementedError()

    @abstractmethod
    def dissoc(self, *ks: K) -> Self:
        raise NotImplementedError()

    @abstractmethod
    def cons(self, *elems) -> Self:
        raise NotImplementedError()


class IPersistentSet(AbstractSet[T], IPersistentCollection[T], ABC):
    __slots__ = ()

    @abstractmethod
    def disj(self, *elems: T) -> Self:
        raise NotImplementedError()
