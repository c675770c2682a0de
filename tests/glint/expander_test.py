import pytest

from glint.lang import list as llist
from glint.lang import reader as reader
from glint.lang import symbol as sym
from glint.lang.compiler.constants import SpecialForm
from glint.lang.compiler.exception import MacroError
from glint.lang.compiler.expander import (
    Expansion,
    ExpansionContext,
    FormKind,
    classify,
    expand,
    macroexpand,
    macroexpand_1,
)
from glint.lang.compiler.macros import CoreMacroEvaluator, MacroUsageError
from glint.lang.namespace import (
    LocalBinding,
    Namespace,
    NamespaceRegistry,
    RequireKind,
    SymbolTable,
)
from glint.lang.obj import lrepr


def read_form(s: str):
    return next(reader.read_str(s))


def _unless(_, test, *body):
    return llist.l(SpecialForm.IF, test, None, llist.l(SpecialForm.DO, *body))


@pytest.fixture
def evaluator() -> CoreMacroEvaluator:
    evaluator = CoreMacroEvaluator()
    evaluator.register("user", "unless", _unless)
    return evaluator


@pytest.fixture
def ctx(registry: NamespaceRegistry, evaluator: CoreMacroEvaluator):
    return ExpansionContext(registry, evaluator, filename="expander_input.cljs")


class TestClassify:
    @pytest.mark.parametrize(
        "s", ["(if a b)", "(fn* [] 1)", "(let* [] 1)", "(. o m)", "(js-await p)"]
    )
    def test_special_forms(self, s: str, ctx: ExpansionContext):
        assert FormKind.SPECIAL == classify(read_form(s), ctx).kind

    @pytest.mark.parametrize("s", ["(f 1)", "(js/f 1)", "((fn [] 1))", "(:a m)"])
    def test_calls(self, s: str, ctx: ExpansionContext):
        assert FormKind.CALL == classify(read_form(s), ctx).kind

    @pytest.mark.parametrize("s", ["(.m o)", "(.-field o)", "(Klass. 1)", "(js/Map.)"])
    def test_interop(self, s: str, ctx: ExpansionContext):
        assert FormKind.INTEROP == classify(read_form(s), ctx).kind

    def test_core_macro(self, ctx: ExpansionContext):
        classification = classify(read_form("(when a b)"), ctx)
        assert FormKind.MACRO == classification.kind
        assert sym.symbol("when") == classification.head
        assert sym.symbol("when", ns="glint.core") == classification.macro

    def test_qualified_core_macro(self, ctx: ExpansionContext):
        for s in ["(clojure.core/when a)", "(cljs.core/when a)"]:
            classification = classify(read_form(s), ctx)
            assert sym.symbol("when", ns="glint.core") == classification.macro

    def test_namespace_macro(self, ctx: ExpansionContext):
        classification = classify(read_form("(unless a b)"), ctx)
        assert sym.symbol("unless", ns="user") == classification.macro
        classification = classify(read_form("(user/unless a b)"), ctx)
        assert sym.symbol("unless", ns="user") == classification.macro

    def test_macro_alias_and_refer(
        self, registry: NamespaceRegistry, ctx: ExpansionContext
    ):
        ctx.evaluator.register("app.macros", "defc", _unless)
        registry.add_require(
            "app.macros", alias="m", kind=RequireKind.MACRO, refers=["defc"]
        )
        assert sym.symbol("defc", ns="app.macros") == (
            classify(read_form("(m/defc a)"), ctx).macro
        )
        assert sym.symbol("defc", ns="app.macros") == (
            classify(read_form("(defc a)"), ctx).macro
        )

    def test_macro_declared_by_known_namespace(self, ctx: ExpansionContext):
        registry = NamespaceRegistry.seeded(
            [Namespace("app.macros").with_macro("defc")]
        )
        registry.add_require("app.macros", alias="m")
        ctx = ExpansionContext(registry, ctx.evaluator)
        classification = classify(read_form("(m/defc a)"), ctx)
        assert FormKind.MACRO == classification.kind
        assert sym.symbol("defc", ns="app.macros") == classification.macro

    def test_locals_shadow_macros(self, ctx: ExpansionContext):
        scope = SymbolTable("fn")
        scope.new_symbol(sym.symbol("when"), LocalBinding.new("when"))
        shadowed = ExpansionContext(ctx.registry, ctx.evaluator, scope=scope)
        assert FormKind.CALL == classify(read_form("(when a b)"), shadowed).kind

    def test_refers_shadow_core_macros(
        self, registry: NamespaceRegistry, ctx: ExpansionContext
    ):
        registry.add_require("app.util", refers=["when"])
        assert FormKind.CALL == classify(read_form("(when a b)"), ctx).kind


class TestExpand:
    def test_expands_until_special_form(self, ctx: ExpansionContext):
        expansion = expand(read_form("(unless a (when b c))"), ctx)
        assert FormKind.SPECIAL == expansion.kind
        assert "(if a nil (do (when b c)))" == lrepr(expansion.form)

    def test_calls_are_unchanged(self, ctx: ExpansionContext):
        form = read_form("(f 1)")
        assert Expansion(FormKind.CALL, form) == expand(form, ctx)

    def test_macro_expanding_to_non_list(self, ctx: ExpansionContext):
        assert Expansion(FormKind.MACRO, None) == expand(read_form("(comment 1)"), ctx)

    def test_rewrites_method_calls(self, ctx: ExpansionContext):
        expansion = expand(read_form("(.log js/console 1 2)"), ctx)
        assert FormKind.INTEROP == expansion.kind
        assert "(. js/console log 1 2)" == lrepr(expansion.form)

    def test_rewrites_field_access(self, ctx: ExpansionContext):
        assert "(. s -length)" == lrepr(macroexpand(read_form("(.-length s)"), ctx))

    def test_rewrites_constructors(self, ctx: ExpansionContext):
        assert "(new Klass 1)" == lrepr(macroexpand(read_form("(Klass. 1)"), ctx))
        assert "(new js/Date)" == lrepr(macroexpand(read_form("(js/Date.)"), ctx))

    def test_method_call_requires_target(self, ctx: ExpansionContext):
        with pytest.raises(MacroError):
            expand(read_form("(.log)"), ctx)

    def test_expansion_keeps_location(self, ctx: ExpansionContext):
        form = read_form("\n\n(unless a b)")
        expanded = macroexpand_1(form, ctx)
        assert 3 == expanded.meta.val_at(reader.READER_LINE_KW)

    def test_macroexpand_1_expands_once(self, ctx: ExpansionContext):
        form = read_form("(unless a (unless b c))")
        assert "(if a nil (do (unless b c)))" == lrepr(macroexpand_1(form, ctx))
        assert "(f (unless a b))" == lrepr(
            macroexpand(read_form("(f (unless a b))"), ctx)
        )


class TestExpansionErrors:
    def test_macro_raises(self, ctx: ExpansionContext):
        def broken(*_):
            raise ValueError("broken")

        ctx.evaluator.register("user", "broken", broken)
        with pytest.raises(MacroError) as e:
            expand(read_form("(broken)"), ctx)
        assert isinstance(e.value.__cause__, ValueError)
        assert "expander_input.cljs" == e.value.filename

    def test_core_macro_usage_error(self, ctx: ExpansionContext):
        with pytest.raises(MacroError) as e:
            expand(read_form("(cond 1)"), ctx)
        assert isinstance(e.value.__cause__, MacroUsageError)

    def test_macro_returns_non_form(self, ctx: ExpansionContext):
        ctx.evaluator.register("user", "bad", lambda *_: object())
        with pytest.raises(MacroError) as e:
            expand(read_form("(bad)"), ctx)
        assert "which is not a form" in e.value.msg

    def test_max_depth(self, registry: NamespaceRegistry, ctx: ExpansionContext):
        ctx.evaluator.register("user", "forever", lambda inv, *_: inv.form)
        shallow = ExpansionContext(registry, ctx.evaluator, max_depth=5)
        with pytest.raises(MacroError) as e:
            expand(read_form("(forever)"), shallow)
        assert "maximum macroexpansion depth of 5 exceeded" == e.value.msg
