"""Compile destructuring binding patterns into flat binding plans.

A plan is an ordered sequence of steps, each of which binds one target symbol to a
value extracted from a previously bound source symbol. Intermediate values (such as
the realized prefix of a sequence bound by a vector pattern) are bound to temporary
symbols which are not visible to user code."""

from typing import Optional, Union

import attr

from glint.lang import keyword as kw
from glint.lang import map as lmap
from glint.lang import symbol as sym
from glint.lang import vector as vec
from glint.lang.typing import LispForm
from glint.lang.util import genname

AMPERSAND = sym.symbol("&")

_AS = kw.keyword("as")
_KEYS = kw.keyword("keys")
_OR = kw.keyword("or")
_REST = kw.keyword("&")
_STRS = kw.keyword("strs")
_SYMS = kw.keyword("syms")


class PatternError(Exception):
    """Raised by the planner for binding patterns of an unsupported shape.

    The analyzer reraises these as compiler exceptions carrying file and phase
    information."""

    def __init__(self, msg: str, form: LispForm) -> None:
        super().__init__(msg)
        self.msg = msg
        self.form = form


@attr.frozen
class Realize:
    """Realize up to `count` elements of a sequence into an array."""

    count: int


@attr.frozen
class Nth:
    index: int


@attr.frozen
class NthRest:
    """The sequence following the first `index` elements, or nil if it is empty.
    The sequence is not realized."""

    index: int


@attr.frozen
class Get:
    key: LispForm
    default: LispForm = None
    has_default: bool = False


@attr.frozen
class RestMap:
    excluded_keys: tuple[LispForm, ...]


@attr.frozen
class Alias:
    pass


PathOp = Union[Realize, Nth, NthRest, Get, RestMap, Alias]


@attr.frozen
class Step:
    target: sym.Symbol
    source: sym.Symbol
    path: PathOp
    is_temp: bool = False


@attr.frozen
class BindingPlan:
    source: sym.Symbol
    steps: tuple[Step, ...]

    @property
    def names(self) -> tuple[sym.Symbol, ...]:
        """Return the user visible symbols bound by this plan, in binding order."""
        return tuple(step.target for step in self.steps if not step.is_temp)


def is_pattern(form: LispForm) -> bool:
    return isinstance(form, (vec.PersistentVector, lmap.PersistentMap))


def _temp(prefix: str) -> sym.Symbol:
    return sym.symbol(genname(prefix))


def _assert_bindable(form: LispForm) -> sym.Symbol:
    if not isinstance(form, sym.Symbol):
        raise PatternError(f"cannot bind to {type(form).__name__}", form)
    if form.ns is not None:
        raise PatternError("cannot bind to a namespace qualified symbol", form)
    if form == AMPERSAND:
        raise PatternError("'&' may only appear before a rest binding", form)
    return form


def _plan_target(target: LispForm, step_source: sym.Symbol, path: PathOp) -> list[Step]:
    """Bind `target` to the value at `path` of `step_source`, recursing into nested
    patterns through a temporary binding."""
    if is_pattern(target):
        tmp = _temp("vec" if isinstance(target, vec.PersistentVector) else "map")
        return [Step(tmp, step_source, path, is_temp=True), *_plan(target, tmp)]
    return [Step(_assert_bindable(target), step_source, path)]


def _plan_vector(pattern: vec.PersistentVector, source: sym.Symbol) -> list[Step]:
    positional: list[LispForm] = []
    rest: Optional[LispForm] = None
    as_sym: Optional[sym.Symbol] = None

    items = list(pattern)
    i = 0
    while i < len(items):
        item = items[i]
        if item == AMPERSAND:
            if rest is not None:
                raise PatternError("only one rest binding is allowed", pattern)
            try:
                rest = items[i + 1]
            except IndexError:
                raise PatternError("expected a binding after '&'", pattern) from None
            i += 2
        elif item == _AS:
            try:
                as_sym = _assert_bindable(items[i + 1])
            except IndexError:
                raise PatternError("expected a name after :as", pattern) from None
            i += 2
            if i != len(items):
                raise PatternError(":as must be the final binding", pattern)
        else:
            if rest is not None:
                raise PatternError("bindings may not follow the rest binding", pattern)
            positional.append(item)
            i += 1

    steps: list[Step] = []
    if as_sym is not None:
        steps.append(Step(as_sym, source, Alias()))

    if positional:
        realized = _temp("vec")
        steps.append(Step(realized, source, Realize(len(positional)), is_temp=True))
        for idx, target in enumerate(positional):
            steps.extend(_plan_target(target, realized, Nth(idx)))
    if rest is not None:
        steps.extend(_plan_target(rest, source, NthRest(len(positional))))

    return steps


def _key_for_name(group: kw.Keyword, name: Union[sym.Symbol, kw.Keyword]) -> LispForm:
    """Return the map key destructured by `name` appearing in a :keys, :strs, or
    :syms group."""
    group_name = group.name
    ns = name.ns if name.ns is not None else group.ns
    if group_name == "strs":
        return name.name
    elif group_name == "syms":
        return sym.symbol(name.name, ns=ns)
    return kw.keyword(name.name, ns=ns)


def _is_key_group(k: LispForm) -> bool:
    return isinstance(k, kw.Keyword) and k.name in {"keys", "strs", "syms"}


def _plan_map(  # pylint: disable=too-many-branches
    pattern: lmap.PersistentMap, source: sym.Symbol
) -> list[Step]:
    defaults = pattern.val_at(_OR, lmap.EMPTY)
    if not isinstance(defaults, lmap.PersistentMap):
        raise PatternError(":or defaults must be a map", defaults)

    def get(key: LispForm, target: LispForm) -> Get:
        if isinstance(target, sym.Symbol) and target in defaults:
            return Get(key, defaults.val_at(target), has_default=True)
        return Get(key)

    steps: list[Step] = []
    rest_target: Optional[LispForm] = None
    keys: list[LispForm] = []

    as_sym = pattern.val_at(_AS)
    if as_sym is not None:
        steps.append(Step(_assert_bindable(as_sym), source, Alias()))

    for k, v in pattern.items():
        if k in {_AS, _OR}:
            continue
        elif k == _REST:
            rest_target = v
        elif _is_key_group(k):
            if not isinstance(v, vec.PersistentVector):
                raise PatternError(f"{k} must be followed by a vector of names", v)
            for name in v:
                if not isinstance(name, (sym.Symbol, kw.Keyword)):
                    raise PatternError(f"{k} names must be symbols or keywords", name)
                key = _key_for_name(k, name)
                target = sym.symbol(name.name)
                keys.append(key)
                steps.append(Step(_assert_bindable(target), source, get(key, target)))
        elif isinstance(k, (sym.Symbol, vec.PersistentVector, lmap.PersistentMap)):
            keys.append(v)
            steps.extend(_plan_target(k, source, get(v, k)))
        else:
            raise PatternError(f"unsupported map pattern key {k}", pattern)

    if rest_target is not None:
        steps.extend(_plan_target(rest_target, source, RestMap(tuple(keys))))

    return steps


def _plan(pattern: LispForm, source: sym.Symbol) -> list[Step]:
    if isinstance(pattern, vec.PersistentVector):
        return _plan_vector(pattern, source)
    elif isinstance(pattern, lmap.PersistentMap):
        return _plan_map(pattern, source)
    elif isinstance(pattern, sym.Symbol):
        return [Step(_assert_bindable(pattern), source, Alias())]
    raise PatternError(
        f"binding patterns must be symbols, vectors, or maps; got {type(pattern)}",
        pattern,
    )


def plan(pattern: LispForm, source: sym.Symbol) -> BindingPlan:
    """Return a binding plan which binds every name in `pattern` from the value
    bound to `source`.

    Raise a PatternError if the pattern is not a supported shape."""
    return BindingPlan(source, tuple(_plan(pattern, source)))
