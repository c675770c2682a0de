"""Macro evaluation.

The compiler never runs macro bodies itself. Instead it hands every macro call to a
`MacroEvaluator`, which returns the replacement form. The default evaluator carries
the core macros as Python functions over forms and can be extended with further
host macros, but has no interpreter for `defmacro` bodies written in glint."""

import logging
from abc import ABC, abstractmethod
from collections.abc import Iterable, Sequence
from re import Pattern
from typing import Callable, Optional

import attr

from glint.lang import keyword as kw
from glint.lang import list as llist
from glint.lang import map as lmap
from glint.lang import set as lset
from glint.lang import symbol as sym
from glint.lang import vector as vec
from glint.lang.compiler.constants import SYM_GEN_META_KEY, SpecialForm
from glint.lang.corelib import CORE_NS, LAZY_HELPER
from glint.lang.interfaces import IMeta
from glint.lang.namespace import Namespace
from glint.lang.tagged import TaggedLiteral
from glint.lang.typing import ReaderForm
from glint.lang.util import next_name_id
from glint.logconfig import TRACE
from glint.util import partition

logger = logging.getLogger(__name__)

_DOC_KW = kw.keyword("doc")
_PRIVATE_KW = kw.keyword("private")
_ELSE_KW = kw.keyword("else")
_LET_KW = kw.keyword("let")
_WHEN_KW = kw.keyword("when")
_WHILE_KW = kw.keyword("while")

_BREAK = llist.l(SpecialForm.JS_STAR, "break")


@attr.frozen
class MacroInvocation:
    """A single request to expand a macro call.

    `macro` is the namespace qualified name of the macro being invoked, `namespace`
    is the namespace the call appears in, and `locals` are the names of the lexical
    bindings visible at the call site."""

    form: llist.PersistentList
    macro: sym.Symbol
    namespace: Namespace
    locals: frozenset[str] = frozenset()

    @property
    def args(self) -> Sequence[ReaderForm]:
        return tuple(self.form.rest)


MacroFunction = Callable[..., ReaderForm]


class MacroUsageError(Exception):
    """Raised by core macros called with malformed arguments."""


class MacroDefinitionError(Exception):
    """Raised by evaluators which cannot define macros from source forms."""


class MacroEvaluator(ABC):
    """The interface the compiler uses to expand macro calls."""

    @abstractmethod
    def expand(self, invocation: MacroInvocation) -> ReaderForm:
        """Return the expansion of the macro call described by `invocation`.

        Evaluators may raise any exception to signal that expansion failed; the
        compiler reports these as macro errors with the original exception as the
        cause."""

    @abstractmethod
    def find_macro(self, name: sym.Symbol) -> bool:
        """Return True if the namespace qualified symbol `name` names a macro."""

    def define(  # pylint: disable=unused-argument
        self, ns: str, name: str, form: llist.PersistentList
    ) -> None:
        """Define the macro `ns/name` from the `defmacro` form `form`."""
        raise MacroDefinitionError(
            f"cannot define macro {ns}/{name}: no macro interpreter is configured"
        )

    @abstractmethod
    def register(self, ns: str, name: str, fn: MacroFunction) -> None:
        """Install the Python function `fn` as the macro `ns/name`.

        Macro functions are called with the `MacroInvocation` followed by the
        arguments of the macro call, as in `fn(invocation, *args)`."""


class CoreMacroEvaluator(MacroEvaluator):
    """The default macro evaluator, holding the core macros as host functions."""

    __slots__ = ("_macros",)

    def __init__(self, macros: Optional[dict[sym.Symbol, MacroFunction]] = None):
        self._macros: dict[sym.Symbol, MacroFunction] = {
            sym.symbol(name, ns=CORE_NS): fn for name, fn in _CORE_MACROS.items()
        }
        if macros is not None:
            self._macros.update(macros)

    def expand(self, invocation: MacroInvocation) -> ReaderForm:
        fn = self._macros[invocation.macro]
        logger.log(TRACE, f"Expanding macro {invocation.macro}")
        return fn(invocation, *invocation.args)

    def find_macro(self, name: sym.Symbol) -> bool:
        return name in self._macros

    def register(self, ns: str, name: str, fn: MacroFunction) -> None:
        self._macros[sym.symbol(name, ns=ns)] = fn


##################
# Form utilities
##################


def _l(*items) -> llist.PersistentList:
    return llist.list(items)


def _v(*items) -> vec.PersistentVector:
    return vec.vector(items)


def _core(name: str) -> sym.Symbol:
    return sym.symbol(name, ns=CORE_NS)


def _gensym(prefix: str) -> sym.Symbol:
    return sym.symbol(f"{prefix}__{next_name_id()}")


def _do(body: Iterable[ReaderForm]) -> ReaderForm:
    body = list(body)
    if len(body) == 1:
        return body[0]
    return _l(SpecialForm.DO, *body)


def _is_seq(form) -> bool:
    return isinstance(form, llist.PersistentList)


def _binding_pair(inv: MacroInvocation, bindings) -> tuple[ReaderForm, ReaderForm]:
    if not isinstance(bindings, vec.PersistentVector) or len(bindings) != 2:
        raise MacroUsageError(
            f"{inv.macro.name} requires a vector of exactly one binding and value"
        )
    return bindings[0], bindings[1]


def _merge_meta(form, meta: lmap.PersistentMap):
    old = form.meta if isinstance(form, IMeta) and form.meta is not None else None
    return form.with_meta(meta if old is None else old.cons(meta))


###############
# Definitions
###############


def _fn_tail(inv: MacroInvocation, args: Sequence[ReaderForm]):
    """Split the arguments of `defn` into the optional doc string and attribute map
    and the remaining function arities."""
    args = list(args)
    doc = None
    attrs: lmap.PersistentMap = lmap.EMPTY
    if args and isinstance(args[0], str) and len(args) > 1:
        doc = args.pop(0)
    if args and isinstance(args[0], lmap.PersistentMap) and len(args) > 1:
        attrs = args.pop(0)
    if not args or not (
        isinstance(args[0], vec.PersistentVector) or _is_seq(args[0])
    ):
        raise MacroUsageError(
            f"{inv.macro.name} requires a parameter vector or one or more arities"
        )
    if doc is not None:
        attrs = attrs.assoc(_DOC_KW, doc)
    return attrs, args


def _defn(inv: MacroInvocation, name, *args, private: bool = False) -> ReaderForm:
    if not isinstance(name, sym.Symbol):
        raise MacroUsageError(f"{inv.macro.name} name must be a symbol")
    attrs, arities = _fn_tail(inv, args)
    if private:
        attrs = attrs.assoc(_PRIVATE_KW, True)
    name = _merge_meta(name, attrs) if len(attrs) > 0 else name
    return _l(SpecialForm.DEF, name, _l(SpecialForm.FN, name, *arities))


def _defn_private(inv: MacroInvocation, name, *args) -> ReaderForm:
    return _defn(inv, name, *args, private=True)


def _defonce(inv: MacroInvocation, name, init=None) -> ReaderForm:
    if isinstance(name, sym.Symbol) and name.name in inv.namespace.defs:
        return None
    return _l(SpecialForm.DEF, name, init)


def _declare(_: MacroInvocation, *names) -> ReaderForm:
    return _do([_l(SpecialForm.DEF, name) for name in names] + [None])


def _fn(inv: MacroInvocation, *args) -> ReaderForm:
    fn_form = _l(SpecialForm.FN, *args)
    if inv.form.meta is not None:
        return fn_form.with_meta(inv.form.meta)
    return fn_form


def _letfn(inv: MacroInvocation, fns, *body) -> ReaderForm:
    if not isinstance(fns, vec.PersistentVector) or not all(map(_is_seq, fns)):
        raise MacroUsageError("letfn requires a vector of function specs")
    names = [f.first for f in fns]
    return _l(
        SpecialForm.LET,
        _v(*(x for name in names for x in (name, None))),
        *(_l(SpecialForm.SET_BANG, f.first, _l(SpecialForm.FN, *f)) for f in fns),
        *body,
    )


###########
# Binding
###########


def _let(_: MacroInvocation, bindings, *body) -> ReaderForm:
    return _l(SpecialForm.LET, bindings, *body)


def _loop(_: MacroInvocation, bindings, *body) -> ReaderForm:
    return _l(SpecialForm.LOOP, bindings, *body)


def _if_test(test_fn: Optional[str]):
    def make_test(tmp: sym.Symbol) -> ReaderForm:
        if test_fn is None:
            return tmp
        return _l(_core(test_fn), tmp)

    return make_test


def _make_if_binding(test_fn: Optional[str]):
    make_test = _if_test(test_fn)

    def _if_binding(inv: MacroInvocation, bindings, then, else_=None):
        target, init = _binding_pair(inv, bindings)
        tmp = _gensym("temp")
        return _l(
            SpecialForm.LET,
            _v(tmp, init),
            _l(
                SpecialForm.IF,
                make_test(tmp),
                _l(SpecialForm.LET, _v(target, tmp), then),
                else_,
            ),
        )

    return _if_binding


def _make_when_binding(test_fn: Optional[str]):
    make_test = _if_test(test_fn)

    def _when_binding(inv: MacroInvocation, bindings, *body):
        target, init = _binding_pair(inv, bindings)
        tmp = _gensym("temp")
        return _l(
            SpecialForm.LET,
            _v(tmp, init),
            _l(
                SpecialForm.IF,
                make_test(tmp),
                _l(SpecialForm.LET, _v(target, tmp), *body),
                None,
            ),
        )

    return _when_binding


################
# Conditionals
################


def _when(_: MacroInvocation, test, *body) -> ReaderForm:
    return _l(SpecialForm.IF, test, _l(SpecialForm.DO, *body), None)


def _when_not(_: MacroInvocation, test, *body) -> ReaderForm:
    return _l(SpecialForm.IF, test, None, _l(SpecialForm.DO, *body))


def _if_not(_: MacroInvocation, test, then, else_=None) -> ReaderForm:
    return _l(SpecialForm.IF, test, else_, then)


def _cond(_: MacroInvocation, *clauses) -> ReaderForm:
    if len(clauses) % 2 != 0:
        raise MacroUsageError("cond requires an even number of forms")
    result: ReaderForm = None
    for test, expr in reversed(list(partition(clauses, 2))):
        if test == _ELSE_KW and result is None:
            result = expr
        else:
            result = _l(SpecialForm.IF, test, expr, result)
    return result


def _no_match(desc: ReaderForm) -> ReaderForm:
    return _l(
        SpecialForm.THROW,
        _l(
            SpecialForm.NEW,
            sym.symbol("Error", ns="js"),
            _l(_core("str"), "No matching clause: ", desc),
        ),
    )


def _condp(_: MacroInvocation, pred, expr, *clauses) -> ReaderForm:
    pred_sym, expr_sym = _gensym("pred"), _gensym("expr")
    pairs = list(partition(clauses, 2))
    if pairs and len(pairs[-1]) == 1:
        (result,) = pairs.pop()
    else:
        result = _no_match(expr_sym)
    for test, then in reversed(pairs):
        result = _l(SpecialForm.IF, _l(pred_sym, test, expr_sym), then, result)
    return _l(SpecialForm.LET, _v(pred_sym, pred, expr_sym, expr), result)


def _case_test(expr_sym: sym.Symbol, test: ReaderForm) -> ReaderForm:
    if isinstance(test, llist.PersistentList):
        return _l(
            _core("or"), *(_l(_core("="), expr_sym, _quote(t)) for t in test)
        )
    return _l(_core("="), expr_sym, _quote(test))


def _quote(form: ReaderForm) -> ReaderForm:
    if isinstance(form, (sym.Symbol, llist.PersistentList)):
        return _l(SpecialForm.QUOTE, form)
    return form


def _case(_: MacroInvocation, expr, *clauses) -> ReaderForm:
    expr_sym = _gensym("case")
    pairs = list(partition(clauses, 2))
    if pairs and len(pairs[-1]) == 1:
        (result,) = pairs.pop()
    else:
        result = _no_match(expr_sym)
    for test, then in reversed(pairs):
        result = _l(SpecialForm.IF, _case_test(expr_sym, test), then, result)
    return _l(SpecialForm.LET, _v(expr_sym, expr), result)


#############
# Threading
#############


def _thread_first(x: ReaderForm, form: ReaderForm) -> ReaderForm:
    if isinstance(form, llist.PersistentList):
        return llist.list([form.first, x, *form.rest], meta=form.meta)
    return _l(form, x)


def _thread_last(x: ReaderForm, form: ReaderForm) -> ReaderForm:
    if isinstance(form, llist.PersistentList):
        return llist.list([*form, x], meta=form.meta)
    return _l(form, x)


def _thread_first_macro(_: MacroInvocation, x, *forms) -> ReaderForm:
    for form in forms:
        x = _thread_first(x, form)
    return x


def _thread_last_macro(_: MacroInvocation, x, *forms) -> ReaderForm:
    for form in forms:
        x = _thread_last(x, form)
    return x


def _as_thread(_: MacroInvocation, expr, name, *forms) -> ReaderForm:
    bindings = [name, expr]
    for form in forms:
        bindings.extend([name, form])
    return _l(SpecialForm.LET, _v(*bindings), name)


def _make_some_thread(thread: Callable[[ReaderForm, ReaderForm], ReaderForm]):
    def _some_thread(_: MacroInvocation, expr, *forms) -> ReaderForm:
        g = _gensym("some")
        result: ReaderForm = g
        for form in reversed(forms):
            result = _l(
                SpecialForm.LET,
                _v(g, thread(g, form)),
                _l(SpecialForm.IF, _l(_core("nil?"), g), None, result),
            )
        return _l(
            SpecialForm.LET,
            _v(g, expr),
            _l(SpecialForm.IF, _l(_core("nil?"), g), None, result),
        )

    return _some_thread


def _cond_thread(_: MacroInvocation, expr, *clauses) -> ReaderForm:
    if len(clauses) % 2 != 0:
        raise MacroUsageError("cond-> requires an even number of forms")
    g = _gensym("cond")
    bindings = [g, expr]
    for test, form in partition(clauses, 2):
        bindings.extend([g, _l(SpecialForm.IF, test, _thread_first(g, form), g)])
    return _l(SpecialForm.LET, _v(*bindings), g)


#########
# Logic
#########


def _and(inv: MacroInvocation, *forms) -> ReaderForm:
    if not forms:
        return True
    if len(forms) == 1:
        return forms[0]
    g = _gensym("and")
    return _l(
        SpecialForm.LET,
        _v(g, forms[0]),
        _l(SpecialForm.IF, g, _and(inv, *forms[1:]), g),
    )


def _or(inv: MacroInvocation, *forms) -> ReaderForm:
    if not forms:
        return None
    if len(forms) == 1:
        return forms[0]
    g = _gensym("or")
    return _l(
        SpecialForm.LET,
        _v(g, forms[0]),
        _l(SpecialForm.IF, g, g, _or(inv, *forms[1:])),
    )


#############
# Iteration
#############


def _dotimes(inv: MacroInvocation, bindings, *body) -> ReaderForm:
    i, n = _binding_pair(inv, bindings)
    limit = _gensym("n")
    return _l(
        SpecialForm.LET,
        _v(limit, n),
        _l(
            SpecialForm.LOOP,
            _v(i, 0),
            _l(
                SpecialForm.IF,
                _l(_core("<"), i, limit),
                _l(SpecialForm.DO, *body, _l(SpecialForm.RECUR, _l(_core("inc"), i))),
                None,
            ),
        ),
    )


def _comprehension(
    inv: MacroInvocation, bindings, body: ReaderForm
) -> ReaderForm:
    """Return nested `js-for-of` forms iterating over every binding in the `for` or
    `doseq` binding vector `bindings`, with `body` innermost."""
    if not isinstance(bindings, vec.PersistentVector) or len(bindings) % 2 != 0:
        raise MacroUsageError(
            f"{inv.macro.name} requires a vector of binding and value pairs"
        )

    pairs = list(partition(bindings, 2))

    def emit(i: int) -> ReaderForm:
        if i == len(pairs):
            return body
        target, value = pairs[i]
        if target == _LET_KW:
            return _l(SpecialForm.LET, value, emit(i + 1))
        elif target == _WHEN_KW:
            return _l(SpecialForm.IF, value, emit(i + 1), None)
        elif target == _WHILE_KW:
            return _l(SpecialForm.IF, value, emit(i + 1), _BREAK)
        elif isinstance(target, kw.Keyword):
            raise MacroUsageError(
                f"{inv.macro.name} does not support the {target} modifier"
            )
        return _l(SpecialForm.FOR_OF, _v(target, value), emit(i + 1))

    if pairs and isinstance(pairs[0][0], kw.Keyword):
        raise MacroUsageError(f"{inv.macro.name} must begin with a binding")
    return emit(0)


def _doseq(inv: MacroInvocation, bindings, *body) -> ReaderForm:
    return _l(
        SpecialForm.DO,
        _comprehension(inv, bindings, _l(SpecialForm.DO, *body)),
        None,
    )


def _for(inv: MacroInvocation, bindings, body) -> ReaderForm:
    producer = _l(
        SpecialForm.FN,
        _v(),
        _comprehension(inv, bindings, _l(SpecialForm.YIELD, body)),
    ).with_meta(lmap.map({SYM_GEN_META_KEY: True}))
    return _l(_core(LAZY_HELPER), producer)


def _while(_: MacroInvocation, test, *body) -> ReaderForm:
    return _l(
        SpecialForm.LOOP,
        _v(),
        _l(
            SpecialForm.IF,
            test,
            _l(SpecialForm.DO, *body, _l(SpecialForm.RECUR)),
            None,
        ),
    )


def _doto(_: MacroInvocation, x, *forms) -> ReaderForm:
    g = _gensym("doto")
    return _l(
        SpecialForm.LET,
        _v(g, x),
        *(_thread_first(g, form) for form in forms),
        g,
    )


def _comment(_: MacroInvocation, *__) -> ReaderForm:
    return None


_CORE_MACROS: dict[str, MacroFunction] = {
    "->": _thread_first_macro,
    "->>": _thread_last_macro,
    "and": _and,
    "as->": _as_thread,
    "case": _case,
    "comment": _comment,
    "cond": _cond,
    "cond->": _cond_thread,
    "condp": _condp,
    "declare": _declare,
    "defn": _defn,
    "defn-": _defn_private,
    "defonce": _defonce,
    "doseq": _doseq,
    "dotimes": _dotimes,
    "doto": _doto,
    "fn": _fn,
    "for": _for,
    "if-let": _make_if_binding(None),
    "if-not": _if_not,
    "if-some": _make_if_binding("some?"),
    "let": _let,
    "letfn": _letfn,
    "loop": _loop,
    "or": _or,
    "some->": _make_some_thread(_thread_first),
    "some->>": _make_some_thread(_thread_last),
    "when": _when,
    "when-let": _make_when_binding(None),
    "when-not": _when_not,
    "when-some": _make_when_binding("some?"),
    "while": _while,
}


_FORM_TYPES = (
    bool,
    int,
    float,
    str,
    type(None),
    kw.Keyword,
    sym.Symbol,
    llist.PersistentList,
    vec.PersistentVector,
    lmap.PersistentMap,
    lset.PersistentSet,
    TaggedLiteral,
    Pattern,
)


def is_form(o) -> bool:
    """Return True if `o` is a value the reader could have produced."""
    return isinstance(o, _FORM_TYPES)
