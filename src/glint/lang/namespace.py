import logging
from collections.abc import Iterable
from enum import Enum
from typing import Optional, Union

import attr
from pyrsistent import PVector, pvector

from glint.lang import corelib
from glint.lang import keyword as kw
from glint.lang import map as lmap
from glint.lang import set as lset
from glint.lang import symbol as sym
from glint.lang.interfaces import IPersistentMap, IPersistentSet
from glint.lang.util import genname, munge
from glint.util import Maybe

logger = logging.getLogger(__name__)

DEFAULT_NS = "user"

_PRIVATE_META_KEY = kw.keyword("private")


class RequireKind(Enum):
    VALUE = "value"
    MACRO = "macro"


@attr.frozen
class Require:
    """A library required by a namespace.

    `lib` is either the name of another glint namespace or, if `is_string` is True,
    a JavaScript module specifier which is imported verbatim."""

    lib: str
    kind: RequireKind = RequireKind.VALUE
    alias: Optional[str] = None
    refers: tuple[str, ...] = ()
    default: Optional[str] = None
    is_string: bool = False

    @property
    def binding(self) -> str:
        """The JavaScript name the library's module object is imported as."""
        if self.alias is not None:
            return munge(self.alias)
        return munge(self.lib.replace(".", "_").replace("/", "_"))


@attr.frozen
class Refer:
    lib: str
    name: str
    is_default: bool = False


@attr.frozen
class Namespace:
    """An immutable record of everything the compiler knows about a namespace.

    Every change produces a new record, so a registry may be snapshotted (and later
    restored) simply by keeping a reference to its namespace map."""

    name: str
    requires: PVector = pvector()
    aliases: IPersistentMap[str, str] = lmap.EMPTY
    macro_aliases: IPersistentMap[str, str] = lmap.EMPTY
    refers: IPersistentMap[str, Refer] = lmap.EMPTY
    macro_refers: IPersistentMap[str, str] = lmap.EMPTY
    defs: IPersistentMap[str, Optional[IPersistentMap]] = lmap.EMPTY
    macros: IPersistentSet[str] = lset.EMPTY
    excluded_core: IPersistentSet[str] = lset.EMPTY

    def with_require(self, req: Require) -> "Namespace":
        requires = pvector(
            r for r in self.requires if (r.lib, r.kind) != (req.lib, req.kind)
        ).append(req)
        if req.kind == RequireKind.MACRO:
            macro_aliases = self.macro_aliases
            if req.alias is not None:
                macro_aliases = macro_aliases.assoc(req.alias, req.lib)
            return attr.evolve(
                self,
                requires=requires,
                macro_aliases=macro_aliases,
                macro_refers=self.macro_refers.assoc(
                    *(x for name in req.refers for x in (name, req.lib))
                ),
            )

        aliases = self.aliases
        if req.alias is not None:
            aliases = aliases.assoc(req.alias, req.lib)
        refers = self.refers.assoc(
            *(x for name in req.refers for x in (name, Refer(req.lib, name)))
        )
        if req.default is not None:
            refers = refers.assoc(req.default, Refer(req.lib, req.default, True))
        return attr.evolve(self, requires=requires, aliases=aliases, refers=refers)

    def with_def(self, name: str, meta: Optional[IPersistentMap] = None) -> "Namespace":
        return attr.evolve(self, defs=self.defs.assoc(name, meta))

    def with_macro(self, name: str) -> "Namespace":
        return attr.evolve(self, macros=self.macros.cons(name))

    def with_excluded_core(self, names: Iterable[str]) -> "Namespace":
        return attr.evolve(self, excluded_core=self.excluded_core.cons(*names))

    def find_require(self, lib: str) -> Optional[Require]:
        for req in self.requires:
            if req.lib == lib and req.kind == RequireKind.VALUE:
                return req
        return None

    def lib_for(self, qualifier: str) -> Optional[str]:
        """Return the library a symbol namespace refers to, given either an alias or
        the full name of a required library."""
        if (lib := self.aliases.val_at(qualifier)) is not None:
            return lib
        if self.find_require(qualifier) is not None:
            return qualifier
        return None

    def refers_core(self, name: str) -> bool:
        return corelib.is_core_function(name) and name not in self.excluded_core

    @property
    def public_defs(self) -> list[str]:
        return [
            name
            for name, meta in self.defs.items()
            if not (meta is not None and meta.val_at(_PRIVATE_META_KEY))
        ]


@attr.frozen
class LocalBinding:
    """A lexically scoped name and the unique JavaScript name it is emitted as."""

    name: str
    js_name: str
    is_this: bool = False

    @classmethod
    def new(cls, name: str, is_this: bool = False) -> "LocalBinding":
        return cls(name, genname(munge(name)), is_this=is_this)


class SymbolTable:
    """A frame of lexical bindings, linked to the frame it was created within.

    Lookups which miss in this frame continue in the parent frame, so names bound in
    inner frames shadow names bound in outer ones."""

    __slots__ = ("_name", "_parent", "_table")

    def __init__(self, name: str, parent: "Optional[SymbolTable]" = None) -> None:
        self._name = name
        self._parent = parent
        self._table: dict[str, LocalBinding] = {}

    def __repr__(self):
        parent = self._parent.name if self._parent is not None else None
        return f"SymbolTable({self._name}, parent={parent}, table={self._table!r})"

    @property
    def name(self) -> str:
        return self._name

    @property
    def parent(self) -> "Optional[SymbolTable]":
        return self._parent

    def new_symbol(self, s: sym.Symbol, binding: LocalBinding) -> LocalBinding:
        self._table[s.name] = binding
        return binding

    def find_symbol(self, s: Union[sym.Symbol, str]) -> Optional[LocalBinding]:
        name = s.name if isinstance(s, sym.Symbol) else s
        if name in self._table:
            return self._table[name]
        if self._parent is None:
            return None
        return self._parent.find_symbol(name)

    def append_frame(self, name: str) -> "SymbolTable":
        return SymbolTable(name, parent=self)

    def local_names(self) -> frozenset[str]:
        """Return the names of every binding visible from this frame."""
        names = set(self._table)
        if self._parent is not None:
            names |= self._parent.local_names()
        return frozenset(names)


@attr.frozen
class Local:
    binding: LocalBinding
    members: tuple[str, ...] = ()


@attr.frozen
class Var:
    """A reference to a name defined in a namespace or library.

    `module` is the JavaScript name of the imported module object the name must be
    accessed through, or None if the name is in scope directly (because it is
    defined in the current namespace, referred, or part of the core library)."""

    ns: str
    name: str
    module: Optional[str] = None
    members: tuple[str, ...] = ()

    @property
    def is_core(self) -> bool:
        return self.ns == corelib.CORE_NS


@attr.frozen
class JSGlobal:
    path: tuple[str, ...]


@attr.frozen
class Unresolved:
    symbol: sym.Symbol


Resolution = Union[Local, Var, JSGlobal, Unresolved]


@attr.frozen
class RegistrySnapshot:
    current: str
    namespaces: IPersistentMap[str, Namespace]


class NamespaceRegistry:
    """The namespace state of a single compilation unit (or REPL session).

    The registry holds immutable `Namespace` records, so taking a snapshot is a
    constant time operation. REPL sessions rely on that to discard the changes made
    by a batch of forms which failed to compile."""

    __slots__ = ("_current", "_namespaces")

    def __init__(
        self,
        current: str = DEFAULT_NS,
        namespaces: Optional[IPersistentMap[str, Namespace]] = None,
    ) -> None:
        self._namespaces: IPersistentMap[str, Namespace] = (
            namespaces if namespaces is not None else lmap.EMPTY
        )
        self._current = current
        if current not in self._namespaces:
            self._namespaces = self._namespaces.assoc(current, Namespace(current))

    @classmethod
    def seeded(
        cls, namespaces: Iterable[Namespace], current: str = DEFAULT_NS
    ) -> "NamespaceRegistry":
        """Create a registry which already knows about `namespaces`, such as those
        compiled earlier in a batch build."""
        return cls(
            current=current,
            namespaces=lmap.from_entries((ns.name, ns) for ns in namespaces),
        )

    @property
    def current_ns(self) -> Namespace:
        return self._namespaces[self._current]

    @property
    def namespaces(self) -> IPersistentMap[str, Namespace]:
        return self._namespaces

    def get(self, name: str) -> Optional[Namespace]:
        return self._namespaces.val_at(name)

    def snapshot(self) -> RegistrySnapshot:
        return RegistrySnapshot(self._current, self._namespaces)

    def restore(self, snapshot: RegistrySnapshot) -> None:
        self._current = snapshot.current
        self._namespaces = snapshot.namespaces

    def _update_current(self, ns: Namespace) -> Namespace:
        self._namespaces = self._namespaces.assoc(ns.name, ns)
        return ns

    def declare_namespace(self, name: str) -> Namespace:
        """Create the namespace `name` if it does not exist and make it current."""
        if name not in self._namespaces:
            logger.debug(f"Creating namespace {name}")
            self._namespaces = self._namespaces.assoc(name, Namespace(name))
        if name != self._current:
            logger.debug(f"Switching current namespace from {self._current} to {name}")
        self._current = name
        return self.current_ns

    def add_require(  # pylint: disable=too-many-arguments
        self,
        lib: str,
        alias: Optional[str] = None,
        kind: RequireKind = RequireKind.VALUE,
        refers: Iterable[str] = (),
        default: Optional[str] = None,
        is_string: bool = False,
    ) -> Require:
        req = Require(
            lib,
            kind=kind,
            alias=alias,
            refers=tuple(refers),
            default=default,
            is_string=is_string,
        )
        logger.debug(f"Namespace {self._current} requires {req}")
        self._update_current(self.current_ns.with_require(req))
        return req

    def add_def(self, name: str, meta: Optional[IPersistentMap] = None) -> None:
        self._update_current(self.current_ns.with_def(name, meta))

    def add_macro(self, name: str) -> None:
        self._update_current(self.current_ns.with_macro(name))

    def exclude_core(self, names: Iterable[str]) -> None:
        self._update_current(self.current_ns.with_excluded_core(names))

    def resolve_alias(self, alias: Optional[str]) -> Optional[str]:
        """Return the namespace name of `alias` in the current namespace, or the name
        of the current namespace if `alias` is None."""
        ns = self.current_ns
        if alias is None:
            return ns.name
        return Maybe(ns.aliases.val_at(alias)).or_else(
            lambda: ns.macro_aliases.val_at(alias)
        )

    def resolve_symbol(  # pylint: disable=too-many-return-statements
        self, s: sym.Symbol, scope: Optional[SymbolTable] = None
    ) -> Resolution:
        """Resolve the symbol `s` in the current namespace.

        Names are searched for in lexical scope, then in the definitions of the
        current namespace, its referred names, the core library, and its required
        libraries. Names which are none of those may still name a JavaScript global,
        either explicitly with the `js/` prefix or by being one of a handful of well
        known ambient globals."""
        ns = self.current_ns

        if s.ns is None:
            if scope is not None and (binding := scope.find_symbol(s)) is not None:
                return Local(binding)
            if s.is_dotted and s.name not in ns.defs:
                head, *members = s.path
                resolved = self.resolve_symbol(sym.symbol(head), scope)
                return _with_members(resolved, tuple(members), s)
            if s.name in ns.defs:
                return Var(ns.name, s.name)
            if (refer := ns.refers.val_at(s.name)) is not None:
                return Var(refer.lib, refer.name)
            if ns.refers_core(s.name):
                return Var(corelib.CORE_NS, s.name)
            if s.name in corelib.AMBIENT_GLOBALS:
                return JSGlobal((s.name,))
            return Unresolved(s)

        if s.is_js_global:
            return JSGlobal(s.path)
        if s.ns == ns.name:
            if s.name in ns.defs:
                return Var(ns.name, s.name)
            return Unresolved(s)
        if s.ns in corelib.CORE_NS_ALIASES:
            if corelib.is_core_function(s.name):
                return Var(corelib.CORE_NS, s.name)
            return Unresolved(s)
        if (lib := ns.lib_for(s.ns)) is not None:
            req = ns.find_require(lib)
            assert req is not None
            known = self._namespaces.val_at(lib)
            head, *members = s.path
            if known is not None and not req.is_string and head not in known.defs:
                return Unresolved(s)
            return Var(lib, head, module=req.binding, members=tuple(members))
        if s.ns in corelib.AMBIENT_GLOBALS:
            return JSGlobal((s.ns, *s.path))
        return Unresolved(s)


def _with_members(
    resolved: Resolution, members: tuple[str, ...], s: sym.Symbol
) -> Resolution:
    if isinstance(resolved, Local):
        return attr.evolve(resolved, members=resolved.members + members)
    if isinstance(resolved, Var):
        return attr.evolve(resolved, members=resolved.members + members)
    if isinstance(resolved, JSGlobal):
        return JSGlobal(resolved.path + members)
    return Unresolved(s)

