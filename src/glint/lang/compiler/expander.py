"""Drive macro expansion of list forms.

Each list form the analyzer sees is first classified by its head. Special forms are
handed to the analyzer as they are, interop sugar is rewritten into the `.` and
`new` special forms, and macro calls are passed to the configured evaluator and
the result is classified again until a special form or a plain call remains."""

import logging
from enum import Enum
from typing import Optional

import attr

from glint.lang import list as llist
from glint.lang import map as lmap
from glint.lang import symbol as sym
from glint.lang.compiler.constants import (
    DEFAULT_COMPILER_FILE_PATH,
    SPECIAL_FORMS,
    SpecialForm,
)
from glint.lang.compiler.exception import CompilerPhase, MacroError
from glint.lang.compiler.macros import MacroEvaluator, MacroInvocation, is_form
from glint.lang.corelib import CORE_NS, CORE_NS_ALIASES
from glint.lang.interfaces import IMeta, IWithMeta
from glint.lang.namespace import Namespace, NamespaceRegistry, SymbolTable
from glint.lang.obj import lrepr
from glint.lang.reader import (
    READER_COL_KW,
    READER_END_COL_KW,
    READER_END_LINE_KW,
    READER_LINE_KW,
)
from glint.lang.typing import ReaderForm
from glint.logconfig import TRACE

logger = logging.getLogger(__name__)

DEFAULT_MAX_MACROEXPAND_DEPTH = 100

_LOC_KEYS = (READER_LINE_KW, READER_COL_KW, READER_END_LINE_KW, READER_END_COL_KW)


class FormKind(Enum):
    SPECIAL = "special"
    MACRO = "macro"
    CALL = "call"
    INTEROP = "interop"


@attr.frozen
class FormClassification:
    """The kind of a list form, as determined by its head.

    `macro` is the namespace qualified name of the macro for MACRO forms and None
    for every other kind."""

    kind: FormKind
    head: ReaderForm
    macro: Optional[sym.Symbol] = None


@attr.frozen
class Expansion:
    """The result of fully expanding a form.

    `kind` is SPECIAL or CALL for list forms, INTEROP for interop sugar which was
    rewritten into a special form, and MACRO if a macro expanded into something
    other than a list (such as a symbol or a literal)."""

    kind: FormKind
    form: ReaderForm


@attr.frozen
class ExpansionContext:
    registry: NamespaceRegistry
    evaluator: MacroEvaluator
    scope: Optional[SymbolTable] = None
    filename: str = DEFAULT_COMPILER_FILE_PATH
    max_depth: int = DEFAULT_MAX_MACROEXPAND_DEPTH

    @property
    def current_ns(self) -> Namespace:
        return self.registry.current_ns

    def MacroError(self, msg: str, form: ReaderForm = None) -> MacroError:
        return MacroError(
            msg, phase=CompilerPhase.MACROEXPANSION, filename=self.filename, form=form
        )


def _is_call(form: ReaderForm) -> bool:
    return isinstance(form, llist.PersistentList) and not form.is_empty


def _resolve_unqualified_macro(
    ctx: ExpansionContext, head: sym.Symbol
) -> Optional[sym.Symbol]:
    name = head.name
    if ctx.scope is not None and ctx.scope.find_symbol(head) is not None:
        return None

    ns = ctx.current_ns
    if name in ns.macros:
        return sym.symbol(name, ns=ns.name)
    if name in ns.defs:
        return None

    local_macro = sym.symbol(name, ns=ns.name)
    if ctx.evaluator.find_macro(local_macro):
        return local_macro
    if (lib := ns.macro_refers.val_at(name)) is not None:
        return sym.symbol(name, ns=lib)
    if name in ns.refers:
        return None

    core_macro = sym.symbol(name, ns=CORE_NS)
    if name not in ns.excluded_core and ctx.evaluator.find_macro(core_macro):
        return core_macro
    return None


def _resolve_qualified_macro(
    ctx: ExpansionContext, head: sym.Symbol
) -> Optional[sym.Symbol]:
    assert head.ns is not None
    ns = ctx.current_ns
    if head.ns in CORE_NS_ALIASES:
        lib = CORE_NS
    elif head.ns == ns.name:
        if head.name in ns.macros:
            return sym.symbol(head.name, ns=ns.name)
        lib = ns.name
    elif (macro_lib := ns.macro_aliases.val_at(head.ns)) is not None:
        lib = macro_lib
    else:
        lib = ns.aliases.val_at(head.ns, head.ns)

    macro = sym.symbol(head.name, ns=lib)
    if ctx.evaluator.find_macro(macro):
        return macro
    known = ctx.registry.get(lib)
    if known is not None and head.name in known.macros:
        return macro
    return None


def classify(form: llist.PersistentList, ctx: ExpansionContext) -> FormClassification:
    """Classify the non-empty list `form` by its head."""
    assert _is_call(form), "Only non-empty lists may be classified"

    head = form.first
    if not isinstance(head, sym.Symbol):
        return FormClassification(FormKind.CALL, head)
    if head in SPECIAL_FORMS:
        return FormClassification(FormKind.SPECIAL, head)
    if head.is_member or head.is_constructor:
        return FormClassification(FormKind.INTEROP, head)
    if head.is_js_global:
        return FormClassification(FormKind.CALL, head)

    if head.ns is None:
        macro = _resolve_unqualified_macro(ctx, head)
    else:
        macro = _resolve_qualified_macro(ctx, head)

    if macro is not None:
        return FormClassification(FormKind.MACRO, head, macro=macro)
    return FormClassification(FormKind.CALL, head)


def _with_original_meta(
    original: llist.PersistentList, rewritten: ReaderForm
) -> ReaderForm:
    """Copy the reader location of `original` onto `rewritten` unless it already
    carries a location of its own."""
    if not isinstance(rewritten, IWithMeta) or not isinstance(original, IMeta):
        return rewritten
    if original.meta is None:
        return rewritten
    if rewritten.meta is not None and rewritten.meta.val_at(READER_LINE_KW):
        return rewritten
    loc = lmap.from_entries(
        (k, original.meta.val_at(k)) for k in _LOC_KEYS if k in original.meta
    )
    if len(loc) == 0:
        return rewritten
    return rewritten.with_meta(
        loc if rewritten.meta is None else rewritten.meta.cons(loc)
    )


def _rewrite_interop(
    form: llist.PersistentList, ctx: ExpansionContext
) -> llist.PersistentList:
    """Rewrite `(.method obj args*)`, `(.-field obj)`, and `(Klass. args*)` into the
    equivalent `.` or `new` special forms."""
    head: sym.Symbol = form.first
    args = list(form.rest)

    if head.is_constructor:
        klass = sym.symbol(head.name[:-1], ns=head.ns, meta=head.meta)
        rewritten = llist.l(SpecialForm.NEW, klass, *args)
    else:
        if not args:
            raise ctx.MacroError(
                f"interop form {head} requires a target object", form=form
            )
        target, *rest = args
        member = sym.symbol(head.name[1:], meta=head.meta)
        rewritten = llist.l(SpecialForm.INTEROP_CALL, target, member, *rest)

    return _with_original_meta(form, rewritten)  # type: ignore[return-value]


def _invoke_macro(
    form: llist.PersistentList, macro: sym.Symbol, ctx: ExpansionContext
) -> ReaderForm:
    evaluator = ctx.evaluator
    invocation = MacroInvocation(
        form=form,
        macro=macro,
        namespace=ctx.current_ns,
        locals=ctx.scope.local_names() if ctx.scope is not None else frozenset(),
    )
    try:
        expanded = evaluator.expand(invocation)
    except MacroError:
        raise
    except Exception as e:
        raise ctx.MacroError(
            f"error occurred during macroexpansion of {macro}", form=form
        ) from e

    if not is_form(expanded):
        raise ctx.MacroError(
            f"macro {macro} returned {type(expanded).__name__}, which is not a form",
            form=form,
        )

    logger.log(TRACE, f"Expanded {lrepr(form)} into {lrepr(expanded)}")
    return _with_original_meta(form, expanded)


def _expand_step(
    form: llist.PersistentList, ctx: ExpansionContext
) -> tuple[FormClassification, ReaderForm]:
    classification = classify(form, ctx)
    if classification.kind == FormKind.MACRO:
        assert classification.macro is not None
        return classification, _invoke_macro(form, classification.macro, ctx)
    elif classification.kind == FormKind.INTEROP:
        return classification, _rewrite_interop(form, ctx)
    return classification, form


def expand(form: llist.PersistentList, ctx: ExpansionContext) -> Expansion:
    """Expand the list `form` until its head is a special form or a callable value.

    Raise a MacroError if a macro fails or if the form has not been fully expanded
    after the maximum number of expansions configured in `ctx`."""
    original = form
    depth = 0
    while True:
        classification, expanded = _expand_step(form, ctx)
        if classification.kind in {FormKind.SPECIAL, FormKind.CALL}:
            return Expansion(classification.kind, form)
        elif classification.kind == FormKind.INTEROP:
            return Expansion(FormKind.INTEROP, expanded)

        depth += 1
        if depth > ctx.max_depth:
            raise ctx.MacroError(
                f"maximum macroexpansion depth of {ctx.max_depth} exceeded",
                form=original,
            )
        if not _is_call(expanded):
            return Expansion(FormKind.MACRO, expanded)
        form = expanded  # type: ignore[assignment]


def macroexpand_1(form: ReaderForm, ctx: ExpansionContext) -> ReaderForm:
    """Expand `form` once if it is a macro call or interop sugar, returning any other
    form unchanged. The result may itself be a macro call."""
    if not _is_call(form):
        return form
    _, expanded = _expand_step(form, ctx)  # type: ignore[arg-type]
    return expanded


def macroexpand(form: ReaderForm, ctx: ExpansionContext) -> ReaderForm:
    """Repeatedly expand `form` as by `macroexpand_1` until it is no longer a macro
    call. Child forms are not expanded."""
    if not _is_call(form):
        return form
    return expand(form, ctx).form  # type: ignore[arg-type]
