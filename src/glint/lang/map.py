from collections.abc import Iterable, Mapping
from typing import Optional, TypeVar

from immutables import Map as _Map
from pyrsistent import PVector, pvector
from typing_extensions import Unpack

from glint.lang.interfaces import ILispObject, IPersistentMap, IWithMeta
from glint.lang.obj import PrintSettings, seq_lrepr
from glint.util import partition

K = TypeVar("K")
V = TypeVar("V")


class PersistentMap(IPersistentMap[K, V], ILispObject, IWithMeta):
    """glint Map form. Delegates internally to an immutables.Map object for lookups
    and keeps a pyrsistent.PVector of keys to remember insertion order.

    Iteration, printing, and code emission all observe the order in which keys were
    first associated, matching the order of entries in a map literal.

    Do not instantiate directly. Instead use the map() and hash_map() factory
    methods below."""

    __slots__ = ("_inner", "_order", "_meta")

    def __init__(
        self,
        m: "_Map[K, V]",
        order: "PVector[K]",
        meta: Optional[IPersistentMap] = None,
    ) -> None:
        self._inner = m
        self._order = order
        self._meta = meta

    def __bool__(self):
        return True

    def __call__(self, key, default=None):
        return self._inner.get(key, default)

    def __contains__(self, item):
        return item in self._inner

    def __eq__(self, other):
        if self is other:
            return True
        if not isinstance(other, Mapping):
            return NotImplemented
        if len(self._inner) != len(other):
            return False
        return dict(self._inner.items()) == dict(other.items())

    def __getitem__(self, item):
        return self._inner[item]

    def __hash__(self):
        return hash(self._inner)

    def __iter__(self):
        yield from self._order

    def __len__(self):
        return len(self._inner)

    def _lrepr(self, **kwargs: Unpack[PrintSettings]) -> str:
        entries = (x for k in self._order for x in (k, self._inner[k]))
        return seq_lrepr(entries, "{", "}", meta=self._meta, **kwargs)

    @property
    def meta(self) -> Optional[IPersistentMap]:
        return self._meta

    def with_meta(self, meta: Optional[IPersistentMap]) -> "PersistentMap":
        return PersistentMap(self._inner, self._order, meta=meta)

    def assoc(self, *kvs) -> "PersistentMap":
        m = self._inner.mutate()
        order = self._order.evolver()
        for k, v in partition(kvs, 2):
            if k not in m:
                order.append(k)
            m[k] = v
        return PersistentMap(m.finish(), order.persistent(), meta=self._meta)

    def contains(self, k: K) -> bool:
        return k in self._inner

    def dissoc(self, *ks: K) -> "PersistentMap":
        m = self._inner.mutate()
        removed = set()
        for k in ks:
            if k in m:
                del m[k]
                removed.add(k)
        if not removed:
            return self
        return PersistentMap(
            m.finish(),
            pvector(k for k in self._order if k not in removed),
            meta=self._meta,
        )

    def val_at(self, k, default=None):
        return self._inner.get(k, default)

    def cons(self, *elems: Mapping) -> "PersistentMap":
        """Merge the entries of each Mapping in `elems` into this map. Later entries
        replace the values of earlier entries with the same key, but keys keep
        their original position."""
        e = self
        for elem in elems:
            if elem is None:
                continue
            if not isinstance(elem, Mapping):
                raise ValueError("Argument to map conj must be another Map")
            e = e.assoc(*(x for entry in elem.items() for x in entry))
        return e


EMPTY: PersistentMap = PersistentMap(_Map(), pvector())


def map(  # pylint:disable=redefined-builtin
    kvs: Mapping[K, V], meta: Optional[IPersistentMap] = None
) -> PersistentMap[K, V]:
    """Creates a new map from a Python mapping, preserving its iteration order."""
    return PersistentMap(_Map(dict(kvs)), pvector(kvs.keys()), meta=meta)


def from_entries(
    entries: Iterable[tuple[K, V]], meta: Optional[IPersistentMap] = None
) -> PersistentMap[K, V]:
    """Creates a new map from an iterable of key/value pairs."""
    return EMPTY.assoc(*(x for entry in entries for x in entry)).with_meta(meta)


def hash_map(*pairs) -> PersistentMap:
    """Creates a new map from alternating keys and values."""
    return EMPTY.assoc(*pairs)


def m(**kvs) -> PersistentMap[str, V]:
    """Creates a new map from keyword arguments."""
    return map(kvs)


__all__ = ["EMPTY", "PersistentMap", "from_entries", "hash_map", "m", "map"]
