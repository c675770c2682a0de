import threading
from functools import total_ordering
from typing import Optional

from typing_extensions import Unpack

from glint.lang.interfaces import ILispObject, INamed
from glint.lang.obj import PrintSettings

# Compilation units may be read on separate threads during a batch build
_LOCK = threading.Lock()
_INTERNED: dict[tuple[str, Optional[str]], "Keyword"] = {}


@total_ordering
class Keyword(ILispObject, INamed):
    """A keyword form.

    Keywords compile to strings, so ``:a`` and ``"a"`` are the same map key in
    emitted code. Keywords are interned: use :py:func:`keyword` to create them."""

    __slots__ = ("_name", "_ns", "_hash")

    def __init__(self, name: str, ns: Optional[str] = None) -> None:
        self._name = name
        self._ns = ns
        self._hash = hash((name, ns))

    @property
    def name(self) -> str:
        return self._name

    @property
    def ns(self) -> Optional[str]:
        return self._ns

    @property
    def qualified_name(self) -> str:
        """Return the string this keyword compiles to, which includes the namespace
        (if any) separated from the name by a slash."""
        if self._ns is not None:
            return f"{self._ns}/{self._name}"
        return self._name

    def _lrepr(self, **kwargs: Unpack[PrintSettings]) -> str:
        return f":{self.qualified_name}"

    def __eq__(self, other):
        return self is other or (
            isinstance(other, Keyword)
            and (self._name, self._ns) == (other._name, other._ns)
        )

    def __hash__(self):
        return self._hash

    def __lt__(self, other):
        if not isinstance(other, Keyword):
            return NotImplemented
        return (self._ns or "", self._name) < (other._ns or "", other._name)

    def __reduce__(self):
        return keyword, (self._name, self._ns)


def keyword(name: str, ns: Optional[str] = None) -> Keyword:
    """Return the interned keyword with name `name` and optional namespace `ns`."""
    key = (name, ns)
    if (found := _INTERNED.get(key)) is not None:
        return found
    with _LOCK:
        return _INTERNED.setdefault(key, Keyword(name, ns=ns))
