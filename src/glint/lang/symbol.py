from functools import total_ordering
from typing import Optional

from typing_extensions import Unpack

from glint.lang.interfaces import ILispObject, INamed, IPersistentMap, IWithMeta
from glint.lang.obj import PrintSettings, with_meta_prefix

JS_NS = "js"

_DOT_NAMES = frozenset({".", ".."})


@total_ordering
class Symbol(ILispObject, INamed, IWithMeta):
    """A symbol form.

    Besides naming locals, definitions and special forms, symbols carry JavaScript
    interop in their spelling: ``js/document.body`` names a global property path,
    ``.log`` and ``.-length`` name members of a target object and ``Date.`` names a
    constructor."""

    __slots__ = ("_name", "_ns", "_meta", "_hash")

    def __init__(
        self, name: str, ns: Optional[str] = None, meta: Optional[IPersistentMap] = None
    ) -> None:
        self._name = name
        self._ns = ns
        self._meta = meta
        self._hash = hash((ns, name))

    @property
    def name(self) -> str:
        return self._name

    @property
    def ns(self) -> Optional[str]:
        return self._ns

    @property
    def meta(self) -> Optional[IPersistentMap]:
        return self._meta

    def with_meta(self, meta: Optional[IPersistentMap]) -> "Symbol":
        return Symbol(self._name, self._ns, meta=meta)

    @property
    def is_js_global(self) -> bool:
        """Return True if this symbol is qualified with the `js` pseudo-namespace."""
        return self._ns == JS_NS

    @property
    def is_member(self) -> bool:
        """Return True for the `.method` and `.-field` heads of interop forms."""
        return (
            self._ns is None
            and self._name.startswith(".")
            and self._name not in _DOT_NAMES
        )

    @property
    def is_constructor(self) -> bool:
        """Return True for `Klass.` heads, which construct a new instance."""
        return self._name.endswith(".") and self._name not in _DOT_NAMES

    @property
    def is_dotted(self) -> bool:
        """Return True if the name is a property path such as `a.b.c`."""
        return (
            "." in self._name
            and not self._name.startswith(".")
            and not self._name.endswith(".")
        )

    @property
    def path(self) -> tuple[str, ...]:
        """Return the dot separated segments of the name."""
        return tuple(self._name.split("."))

    def _lrepr(self, **kwargs: Unpack[PrintSettings]) -> str:
        text = self._name if self._ns is None else f"{self._ns}/{self._name}"
        return with_meta_prefix(text, self._meta, **kwargs)

    def __eq__(self, other):
        if not isinstance(other, Symbol):
            return False
        return self._ns == other._ns and self._name == other._name

    def __hash__(self):
        return self._hash

    def __lt__(self, other):
        if other is None:  # pragma: no cover
            return False
        if not isinstance(other, Symbol):
            return NotImplemented
        return (self._ns or "", self._name) < (other._ns or "", other._name)


def symbol(
    name: str, ns: Optional[str] = None, meta: Optional[IPersistentMap] = None
) -> Symbol:
    """Create a new symbol."""
    return Symbol(name, ns=ns, meta=meta)
