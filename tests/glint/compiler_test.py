import pytest

from glint.lang import compiler as compiler
from glint.lang.compiler.exception import (
    AwaitContextError,
    CompilerException,
    DestructureShapeError,
    IllegalRecurError,
    MacroError,
    UnresolvedSymbolError,
    UnsupportedFormError,
)
from glint.lang.compiler.macros import CoreMacroEvaluator
from glint.lang.namespace import NamespaceRegistry
from glint.lang.reader import ReadError


def js(*lines: str) -> str:
    """Return the text of a module made of `lines`."""
    return "\n".join(lines) + "\n"


class TestCompilerOpts:
    def test_default_context(self):
        opts = compiler.compiler_opts()
        assert compiler.STATEMENT_CONTEXT == opts.val_at(compiler.CONTEXT)
        assert "glint-core" == opts.val_at(compiler.CORE_MODULE)
        assert ".mjs" == opts.val_at(compiler.OUTPUT_EXTENSION)

    def test_invalid_context(self):
        with pytest.raises(ValueError):
            compiler.compiler_opts(context="module")

    def test_compile_empty_source(self):
        result = compiler.compile_str("")
        assert "" == result.output_text
        assert "user" == result.namespace_name
        assert () == result.requires


class TestPositions:
    def test_pure_statements_are_dropped(self, lcompile):
        assert "" == lcompile("1")
        assert "" == lcompile(':a "b" nil')

    def test_expression_context(self, lcompile_expr):
        assert "1" == lcompile_expr("1")
        assert "2" == lcompile_expr("(js/f) 2").splitlines()[-1]

    def test_return_context(self, lcompile):
        assert js("return 1;") == lcompile("1", context=compiler.RETURN_CONTEXT)

    def test_statement_context_keeps_calls(self, lcompile):
        assert js("f(1);", "g();") == lcompile("(js/f 1) (js/g)")


class TestDef:
    def test_def(self, lcompile):
        assert js("var x = 1;", "export { x };") == lcompile("(def x 1)")

    def test_def_without_init(self, lcompile):
        assert js("var x;", "export { x };") == lcompile("(def x)")

    def test_private_def_is_not_exported(self, lcompile):
        assert js("var x = 1;") == lcompile("(def ^:private x 1)")

    def test_def_docstring(self, lcompile):
        assert js("/**", " * Counts.", " */", "var x = 1;", "export { x };") == (
            lcompile('(def x "Counts." 1)')
        )

    def test_def_munges_names(self, lcompile):
        assert js("var valid_QMARK_ = true;", "export { valid_QMARK_ };") == (
            lcompile("(def valid? true)")
        )

    def test_elide_exports(self, lcompile):
        assert js("var x = 1;") == lcompile("(def x 1)", elide_exports=True)

    def test_nested_def_is_hoisted(self, lcompile):
        assert (
            js(
                "var y;",
                "var f = function() {",
                "  return (y = 1);",
                "};",
                "export { f, y };",
            )
            == lcompile("(def f (fn [] (def y 1)))")
        )

    def test_defn(self, lcompile):
        assert (
            js(
                "var add = function add_N(a_N, b_N) {",
                "  return (a_N + b_N);",
                "};",
                "export { add };",
            )
            == lcompile("(defn add [a b] (+ a b))")
        )

    def test_def_errors(self, lcompile):
        with pytest.raises(CompilerException):
            lcompile("(def)")
        with pytest.raises(CompilerException):
            lcompile("(def x 1 2 3)")
        with pytest.raises(CompilerException):
            lcompile("(def a/b 1)")
        with pytest.raises(CompilerException):
            lcompile("(def x 1 2)")


class TestFn:
    def test_anonymous_fn(self, lcompile_expr):
        assert "function(x_N) {\n  return x_N;\n}" == lcompile_expr("(fn [x] x)")

    def test_fn_statement_is_wrapped(self, lcompile):
        assert js("(function(x_N) {", "  return x_N;", "});") == lcompile(
            "(fn [x] x)"
        )

    def test_variadic_fn(self, lcompile_expr):
        assert "function(a_N, ...more_N) {\n  return more_N;\n}" == lcompile_expr(
            "(fn [a & more] more)"
        )

    def test_async_fn(self, lcompile_expr):
        assert (
            'async function f_N() {\n  return (await fetch("u"));\n}'
            == lcompile_expr('(fn* ^:async f [] (js-await (js/fetch "u")))')
        )

    def test_generator_fn(self, lcompile_expr):
        assert "function* g_N() {\n  return (yield 1);\n}" == lcompile_expr(
            "(fn* ^:gen g [] (js-yield 1))"
        )

    def test_multi_arity_fn(self, lcompile_expr):
        throw = (
            '    throw new Error("Wrong number of args (" + args.length + ") '
            'passed to " + "fn");'
        )
        assert (
            "\n".join(
                [
                    "(() => {",
                    "  const fn_arity_N = function() {",
                    "    return 0;",
                    "  };",
                    "  const fn_arity_N = function(x_N) {",
                    "    return x_N;",
                    "  };",
                    "  const fn_N = function (...args) {",
                    "    if (args.length === 0) return fn_arity_N.apply(this, args);",
                    "    if (args.length === 1) return fn_arity_N.apply(this, args);",
                    throw,
                    "  };",
                    "  return fn_N;",
                    "})()",
                ]
            )
            == lcompile_expr("(fn* ([] 0) ([x] x))")
        )

    def test_multi_arity_variadic_dispatch(self, lcompile_expr):
        compiled = lcompile_expr("(fn* f ([] 0) ([x & xs] x))")
        assert "if (args.length === 0) return f_N.apply(this, args);" in compiled
        assert "if (args.length >= 1) return f_N.apply(this, args);" in compiled
        assert 'passed to " + "f");' in compiled
        assert compiled.endswith("  return f_N;\n})()")

    def test_fn_recur(self, lcompile_expr):
        assert (
            js(
                "import { pos_QMARK_, dec } from 'glint-core';",
                "function(n_N) {",
                "  fn_arity_N: while (true) {",
                "    if (pos_QMARK_(n_N)) {",
                "      n_N = dec(n_N);",
                "      continue fn_arity_N;",
                "    } else {",
                "      return n_N;",
                "    }",
                "  }",
                "}",
            ).rstrip("\n")
            == lcompile_expr("(fn [n] (if (pos? n) (recur (dec n)) n))")
        )

    def test_destructured_params(self, lcompile_expr):
        assert (
            js(
                "import { get } from 'glint-core';",
                "function(map_N) {",
                '  let a_N = get(map_N, "a", 1);',
                "  return a_N;",
                "}",
            ).rstrip("\n")
            == lcompile_expr("(fn [{:keys [a] :or {a 1}}] a)")
        )

    def test_fn_errors(self, lcompile):
        with pytest.raises(CompilerException):
            lcompile("(fn*)")
        with pytest.raises(CompilerException):
            lcompile("(fn* f 1)")
        with pytest.raises(CompilerException):
            lcompile("(fn* ([x] x) ([y] y))")
        with pytest.raises(CompilerException):
            lcompile("(fn* ([& a] a) ([& b] b))")
        with pytest.raises(CompilerException):
            lcompile("(fn* ([a b c] a) ([x & y] x))")
        with pytest.raises(CompilerException):
            lcompile("(fn* [a &] a)")
        with pytest.raises(DestructureShapeError):
            lcompile("(fn* [1] 1)")


class TestIf:
    @pytest.mark.parametrize(
        "code,v",
        [
            ("(if true 1 2)", "(true ? 1 : 2)"),
            ("(if false 1 2)", "(false ? 1 : 2)"),
            ("(if nil 1 2)", "(false ? 1 : 2)"),
            ('(if "" 1 2)', "(true ? 1 : 2)"),
            ("(if 0 1 2)", "(true ? 1 : 2)"),
            ("(if true 1)", "(true ? 1 : null)"),
        ],
    )
    def test_constant_tests(self, lcompile_expr, code: str, v: str):
        assert v == lcompile_expr(code)

    def test_identifier_test(self, lcompile_expr):
        assert "((x != null && x !== false) ? 1 : 2)" == (
            lcompile_expr("(def x 1) (if x 1 2)").splitlines()[1]
        )

    def test_boolean_function_test(self, lcompile_expr):
        assert (
            "import { nil_QMARK_ } from 'glint-core';\n"
            "(nil_QMARK_(null) ? 1 : 2)"
        ) == lcompile_expr("(if (nil? nil) 1 2)")

    def test_inline_comparison_test(self, lcompile_expr):
        assert "((1 < 2) ? 1 : 2)" == lcompile_expr("(if (< 1 2) 1 2)")

    def test_truthiness_helper(self, lcompile_expr):
        assert (
            "import { get, truth_ } from 'glint-core';\n"
            '(truth_(get({}, "a")) ? 1 : 2)'
        ) == lcompile_expr("(if (get {} :a) 1 2)")

    def test_if_statement(self, lcompile):
        assert (
            js(
                "var x = 1;",
                "if ((x != null && x !== false)) {",
                "  f();",
                "} else {",
                "  g();",
                "}",
                "export { x };",
            )
            == lcompile("(def x 1) (if x (js/f) (js/g))")
        )

    def test_if_statement_without_else(self, lcompile):
        assert js("if (true) {", "  f();", "}") == lcompile("(if true (js/f))")

    def test_else_if_chain(self, lcompile):
        assert (
            js(
                "if ((1 < 2)) {",
                "  f();",
                "} else if ((2 < 3)) {",
                "  g();",
                "} else {",
                "  h();",
                "}",
            )
            == lcompile("(if (< 1 2) (js/f) (if (< 2 3) (js/g) (js/h)))")
        )

    def test_if_errors(self, lcompile):
        with pytest.raises(CompilerException):
            lcompile("(if)")
        with pytest.raises(CompilerException):
            lcompile("(if true)")
        with pytest.raises(CompilerException):
            lcompile("(if true 1 2 3)")


class TestLet:
    def test_let_statement(self, lcompile):
        assert js("let a_N = 1;", "f(a_N);") == lcompile("(let [a 1] (js/f a))")

    def test_let_expression(self, lcompile_expr):
        assert "(() => {\n  let a_N = 1;\n  return a_N;\n})()" == lcompile_expr(
            "(let [a 1] a)"
        )

    def test_async_let_expression(self, lcompile_expr):
        assert (
            "(await (async () => {\n  let a_N = (await 1);\n  return a_N;\n})())"
            == lcompile_expr("(let [a (js-await 1)] a)")
        )

    def test_let_shadowing(self, lcompile):
        compiled = lcompile("(let [a 1 a (js/f a)] (js/g a))", raw=True)
        first, second, call = compiled.splitlines()
        first_name = first.split()[1]
        second_name = second.split()[1]
        assert first_name != second_name
        assert f"let {second_name} = f({first_name});" == second
        assert f"g({second_name});" == call

    def test_vector_destructuring(self, lcompile):
        assert (
            js(
                "import { take, vec } from 'glint-core';",
                "let vec_N = [1, 2];",
                "let vec_N = vec(take(2, vec_N));",
                "let a_N = vec_N[0];",
                "let b_N = vec_N[1];",
                "f(a_N, b_N);",
            )
            == lcompile("(let [[a b] [1 2]] (js/f a b))")
        )

    def test_rest_destructuring(self, lcompile):
        assert (
            js(
                "import { take, vec, nthnext } from 'glint-core';",
                "let vec_N = [1, 2];",
                "let vec_N = vec(take(1, vec_N));",
                "let a_N = vec_N[0];",
                "let more_N = nthnext(vec_N, 1);",
                "f(more_N);",
            )
            == lcompile("(let [[a & more] [1 2]] (js/f more))")
        )
        assert "let more_N = nthnext(vec_N, 0);" in lcompile(
            "(let [[& more] [1 2]] (js/f more))"
        )

    def test_let_errors(self, lcompile):
        with pytest.raises(CompilerException):
            lcompile("(let*)")
        with pytest.raises(CompilerException):
            lcompile("(let* (a 1) a)")
        with pytest.raises(CompilerException):
            lcompile("(let* [a] a)")
        with pytest.raises(DestructureShapeError):
            lcompile("(let* [1 2] 1)")
        with pytest.raises(DestructureShapeError):
            lcompile("(let* [[a & b c] [1 2]] a)")


class TestLoop:
    def test_loop_statement(self, lcompile):
        assert (
            js(
                "import { inc } from 'glint-core';",
                "let i_N = 0;",
                "loop_N: while (true) {",
                "  if ((i_N < 10)) {",
                "    i_N = inc(i_N);",
                "    continue loop_N;",
                "  }",
                "  break loop_N;",
                "}",
            )
            == lcompile("(loop [i 0] (if (< i 10) (recur (inc i)) i))")
        )

    def test_loop_expression(self, lcompile_expr):
        assert (
            "\n".join(
                [
                    "import { inc } from 'glint-core';",
                    "(() => {",
                    "  let i_N = 0;",
                    "  loop_N: while (true) {",
                    "    if ((i_N < 10)) {",
                    "      i_N = inc(i_N);",
                    "      continue loop_N;",
                    "    } else {",
                    "      return i_N;",
                    "    }",
                    "  }",
                    "})()",
                ]
            )
            == lcompile_expr("(loop [i 0] (if (< i 10) (recur (inc i)) i))")
        )

    def test_recur_multiple_bindings(self, lcompile):
        compiled = lcompile("(loop [a 0 b 1] (recur b (+ a b)))")
        assert "  [a_N, b_N] = [b_N, (a_N + b_N)];" in compiled
        assert "  continue loop_N;" in compiled

    def test_loop_without_recur(self, lcompile):
        assert js("let a_N = 1;", "f(a_N);") == lcompile("(loop [a 1] (js/f a))")

    def test_recur_errors(self, lcompile):
        with pytest.raises(IllegalRecurError, match="no recur point"):
            lcompile("(recur 1)")
        with pytest.raises(IllegalRecurError, match="tail position"):
            lcompile("(fn [x] (do (recur 1) x))")
        with pytest.raises(IllegalRecurError, match="tail position"):
            lcompile("(loop [a 1] (js/f (recur 2)))")
        with pytest.raises(IllegalRecurError, match="recur arity"):
            lcompile("(loop [a 1] (recur 1 2))")
        with pytest.raises(IllegalRecurError):
            lcompile("(loop [a 1] (try (recur 2)))")


class TestDo:
    def test_do_statement(self, lcompile):
        assert js("f();", "g();") == lcompile("(do (js/f) (js/g))")

    def test_single_expression_do(self, lcompile_expr):
        assert "1" == lcompile_expr("(do 1)")

    def test_do_expression(self, lcompile_expr):
        assert "(() => {\n  f();\n  return 2;\n})()" == lcompile_expr(
            "(do (js/f) 2)"
        )


class TestInterop:
    def test_method_call(self, lcompile):
        assert js("console.log(1, 2);") == lcompile("(.log js/console 1 2)")
        assert js("console.log(1);") == lcompile("(. js/console (log 1))")

    def test_field_access(self, lcompile_expr):
        assert '("abc").length' == lcompile_expr('(.-length "abc")')
        assert "document.title" == lcompile_expr("(.-title js/document)")

    def test_dotted_symbols(self, lcompile_expr):
        assert "Math.PI" == lcompile_expr("Math.PI")
        assert "a.b.c" == lcompile_expr("js/a.b.c")

    def test_new(self, lcompile_expr):
        assert "new Date(1)" == lcompile_expr("(new js/Date 1)")
        assert "new Map()" == lcompile_expr("(new Map)")

    def test_js_star(self, lcompile, lcompile_expr):
        assert "(typeof 1)" == lcompile_expr('(js* "typeof ~{}" 1)')
        assert js("debugger;") == lcompile('(js* "debugger;")')
        with pytest.raises(CompilerException):
            lcompile('(js* "~{} + ~{}" 1)')
        with pytest.raises(CompilerException):
            lcompile("(js* 1)")

    def test_set_bang(self, lcompile, lcompile_expr):
        assert js("var x = 1;", "x = 2;", "export { x };") == lcompile(
            "(def x 1) (set! x 2)"
        )
        assert js('document.title = "t";') == lcompile(
            '(set! (.-title js/document) "t")'
        )
        assert "(document.title = 1)" == lcompile_expr(
            "(set! (.-title js/document) 1)"
        )
        assert js("let a_N = 1;", "a_N = 2;") == lcompile("(let [a 1] (set! a 2))")

    def test_set_bang_errors(self, lcompile):
        with pytest.raises(CompilerException, match="cannot set!"):
            lcompile("(set! 1 2)")
        with pytest.raises(CompilerException, match="cannot set!"):
            lcompile("(set! inc 2)")
        with pytest.raises(CompilerException):
            lcompile("(def x 1) (set! x)")

    def test_throw(self, lcompile, lcompile_expr):
        assert js('throw new Error("x");') == lcompile('(throw (new js/Error "x"))')
        assert '(() => {\n  throw new Error("x");\n})()' == lcompile_expr(
            '(throw (new js/Error "x"))'
        )

    def test_await(self, lcompile):
        assert js('(await fetch("u"));') == lcompile('(js-await (js/fetch "u"))')

    def test_await_outside_async_fn(self, lcompile):
        with pytest.raises(AwaitContextError):
            lcompile("(fn [] (js-await 1))")

    def test_yield_outside_generator(self, lcompile):
        with pytest.raises(UnsupportedFormError):
            lcompile("(js-yield 1)")


class TestTry:
    def test_default_catch(self, lcompile):
        assert js("try {", "  f();", "} catch (e_N) {", "  g(e_N);", "}") == (
            lcompile("(try (js/f) (catch :default e (js/g e)))")
        )

    def test_typed_catch(self, lcompile):
        assert (
            js(
                "try {",
                "  f();",
                "} catch (e_N) {",
                "  if (e_N instanceof Error) {",
                "    let e_N = e_N;",
                "    g(e_N);",
                "  } else {",
                "    throw e_N;",
                "  }",
                "}",
            )
            == lcompile("(try (js/f) (catch js/Error e (js/g e)))")
        )

    def test_multiple_catches(self, lcompile):
        assert (
            js(
                "try {",
                "  f();",
                "} catch (e_N) {",
                "  if (e_N instanceof TypeError) {",
                "    let t_N = e_N;",
                "    g(t_N);",
                "  } else if (e_N instanceof Error) {",
                "    let e_N = e_N;",
                "    h(e_N);",
                "  } else {",
                "    let x_N = e_N;",
                "    i(x_N);",
                "  }",
                "}",
            )
            == lcompile(
                """
                (try (js/f)
                  (catch js/TypeError t (js/g t))
                  (catch js/Error e (js/h e))
                  (catch :default x (js/i x)))
                """
            )
        )

    def test_finally(self, lcompile):
        assert js("try {", "  f();", "} finally {", "  g();", "}") == lcompile(
            "(try (js/f) (finally (js/g)))"
        )

    def test_finally_expression(self, lcompile_expr):
        assert (
            "\n".join(
                [
                    "(() => {",
                    "  try {",
                    "    return 1;",
                    "  } finally {",
                    "    g();",
                    "  }",
                    "})()",
                ]
            )
            == lcompile_expr("(try 1 (finally (js/g)))")
        )

    def test_try_expression(self, lcompile_expr):
        assert (
            "\n".join(
                [
                    "(() => {",
                    "  try {",
                    "    return 1;",
                    "  } catch (e_N) {",
                    "    return 2;",
                    "  }",
                    "})()",
                ]
            )
            == lcompile_expr("(try 1 (catch :default e 2))")
        )

    def test_try_errors(self, lcompile):
        with pytest.raises(CompilerException):
            lcompile("(try (catch :default e 1) 2)")
        with pytest.raises(CompilerException):
            lcompile("(try 1 (finally 2) (catch :default e 3))")
        with pytest.raises(CompilerException):
            lcompile("(try 1 (finally 2) (finally 3))")
        with pytest.raises(CompilerException):
            lcompile("(try 1 (catch :default e 2) (catch js/Error e 3))")
        with pytest.raises(CompilerException):
            lcompile("(try 1 (catch js/Error 2 3))")


class TestForOf:
    def test_for_of_statement(self, lcompile):
        assert (
            js(
                "import { iterable } from 'glint-core';",
                "for (let x_N of iterable([1, 2])) {",
                "  f(x_N);",
                "}",
            )
            == lcompile("(js-for-of [x [1 2]] (js/f x))")
        )

    def test_for_of_returns_nil(self, lcompile_expr):
        assert (
            "\n".join(
                [
                    "import { iterable } from 'glint-core';",
                    "function(xs_N) {",
                    "  for (let x_N of iterable(xs_N)) {",
                    "    f(x_N);",
                    "  }",
                    "  return null;",
                    "}",
                ]
            )
            == lcompile_expr("(fn [xs] (js-for-of [x xs] (js/f x)))")
        )

    def test_for_of_errors(self, lcompile):
        with pytest.raises(CompilerException):
            lcompile("(js-for-of [x] x)")
        with pytest.raises(DestructureShapeError):
            lcompile("(js-for-of [1 [1]] 1)")


class TestInvoke:
    @pytest.mark.parametrize(
        "code,v",
        [
            ("(+)", "0"),
            ("(*)", "1"),
            ("(+ 1 2 3)", "(1 + 2 + 3)"),
            ("(* 2 3)", "(2 * 3)"),
            ("(- 1)", "(- 1)"),
            ("(- 3 1)", "(3 - 1)"),
            ("(/ 6 3)", "(6 / 3)"),
            ("(< 1 2)", "(1 < 2)"),
            ("(>= 1 2)", "(1 >= 2)"),
            ("(identical? 1 2)", "(1 === 2)"),
        ],
    )
    def test_inline_operators(self, lcompile_expr, code: str, v: str):
        assert v == lcompile_expr(code)

    def test_comparison_arity_falls_back_to_call(self, lcompile_expr):
        assert "import { _LT_ } from 'glint-core';\n_LT_(1, 2, 3)" == lcompile_expr(
            "(< 1 2 3)"
        )

    def test_core_call(self, lcompile_expr):
        assert "import { inc } from 'glint-core';\ninc(1)" == lcompile_expr("(inc 1)")

    def test_core_alias(self, lcompile_expr):
        assert "core.inc(1)" == lcompile_expr("(inc 1)", core_alias="core")

    def test_core_module(self, lcompile_expr):
        assert "import { inc } from './core.mjs';\ninc(1)" == lcompile_expr(
            "(inc 1)", core_module="./core.mjs"
        )

    def test_elide_imports(self, lcompile_expr):
        assert "inc(1)" == lcompile_expr("(inc 1)", elide_imports=True)

    def test_keyword_invoke(self, lcompile_expr):
        assert 'import { get } from \'glint-core\';\nget({"a": 1}, "a")' == (
            lcompile_expr("(:a {:a 1})")
        )
        assert 'get({}, "a", 2)' == lcompile_expr("(:a {} 2)").splitlines()[-1]
        with pytest.raises(CompilerException):
            lcompile_expr("(:a)")

    def test_collection_ops(self, lcompile_expr):
        assert (
            "import { copy, assoc_BANG_ } from 'glint-core';\n"
            'assoc_BANG_(copy({}), "a", 1)'
        ) == lcompile_expr("(assoc {} :a 1)")
        assert "conj_BANG_([], 1)" == lcompile_expr("(conj! [] 1)").splitlines()[-1]

    def test_shadowed_core_names(self, lcompile):
        assert (
            js(
                "import { get as core_get } from 'glint-core';",
                "var get = 1;",
                'core_get({}, "a");',
                "export { get };",
            )
            == lcompile("(def get 1) (:a {})")
        )

    def test_local_invoke(self, lcompile_expr):
        assert "function(f_N) {\n  return f_N(1);\n}" == lcompile_expr(
            "(fn [f] (f 1))"
        )

    def test_unresolved_symbol(self, lcompile):
        with pytest.raises(UnresolvedSymbolError):
            lcompile("(no-such-fn 1)")

    def test_unresolved_symbol_in_repl_mode(self, lcompile_expr):
        assert "foo.bar(1)" == lcompile_expr("(foo.bar 1)", repl=True)


class TestConstants:
    @pytest.mark.parametrize(
        "code,v",
        [
            ("nil", "null"),
            ("true", "true"),
            ("false", "false"),
            ("1", "1"),
            ("-1", "-1"),
            ("1.5", "1.5"),
            ("##NaN", "NaN"),
            ("##Inf", "Infinity"),
            ("##-Inf", "-Infinity"),
            ('"hi"', '"hi"'),
            ('"a\\nb"', '"a\\nb"'),
            ("\\a", '"a"'),
            (":a", '"a"'),
            (":a/b", '"a/b"'),
            ("::b", '"user/b"'),
            ('#"a/b"', "/a\\/b/"),
            ("'sym", '"sym"'),
            ("'ns/sym", '"ns/sym"'),
            ("'[a :b]", '["a", "b"]'),
            ("'{:a 1}", '{"a": 1}'),
            ("'#{1}", "new Set([1])"),
        ],
    )
    def test_constant(self, lcompile_expr, code: str, v: str):
        assert v == lcompile_expr(code)

    def test_trailing_nil(self, lcompile, lcompile_expr):
        assert "null" == lcompile_expr("1 nil").splitlines()[-1]
        assert js("return null;") == lcompile("nil", context=compiler.RETURN_CONTEXT)

    def test_keywords_read_after_ns(self, lcompile_expr):
        assert '"app.main/b"' == lcompile_expr("(ns app.main) ::b").splitlines()[-1]
        assert '"app.util/x"' == lcompile_expr(
            "(ns app.main (:require [app.util :as u])) ::u/x"
        ).splitlines()[-1]

    def test_quoted_list(self, lcompile_expr):
        assert "import { list } from 'glint-core';\nlist(1, \"a\")" == (
            lcompile_expr("'(1 a)")
        )
        assert "list()" == lcompile_expr("()").splitlines()[-1]


class TestCollections:
    def test_vector(self, lcompile_expr):
        assert "[1, [2, 3]]" == lcompile_expr("[1 [2 3]]")
        assert "[]" == lcompile_expr("[]")

    def test_set(self, lcompile_expr):
        assert "new Set([1, 2])" == lcompile_expr("#{1 2}")

    def test_map(self, lcompile_expr):
        assert "{}" == lcompile_expr("{}")
        assert '{"a": 1, "b": 2, 3: 4}' == lcompile_expr('{:a 1 "b" 2 3 4}')
        assert "{[[1]]: 2}" == lcompile_expr("{[1] 2}")

    def test_js_literal(self, lcompile_expr):
        assert '{"a": [1]}' == lcompile_expr("#js {:a #js [1]}")


class TestJSX:
    def test_element(self, lcompile_expr):
        assert 'React.createElement("div", { id: "x" }, "hi")' == lcompile_expr(
            '#jsx [:div {:id "x"} "hi"]'
        )

    def test_element_without_props(self, lcompile_expr):
        assert 'React.createElement("br", null)' == lcompile_expr("#jsx [:br]")

    def test_renamed_props(self, lcompile_expr):
        assert 'React.createElement("p", { className: "c" })' == lcompile_expr(
            '#jsx [:p {:class "c"}]'
        )

    def test_string_props(self, lcompile_expr):
        assert 'React.createElement("p", { "data-x": 1 })' == lcompile_expr(
            '#jsx [:p {"data-x" 1}]'
        )

    def test_spread_props(self, lcompile_expr):
        assert 'React.createElement("p", { ...props })' == (
            lcompile_expr("(def props {}) #jsx [:p {:& props}]").splitlines()[1]
        )

    def test_fragment(self, lcompile_expr):
        assert 'React.createElement(React.Fragment, null, "a")' == lcompile_expr(
            '#jsx [:<> "a"]'
        )

    def test_component(self, lcompile_expr):
        assert "React.createElement(Foo, null)" == lcompile_expr("#jsx [js/Foo]")

    def test_custom_factory(self, lcompile_expr):
        assert 'h(F, null, h("b", null))' == lcompile_expr(
            "#jsx [:<> #jsx [:b]]", jsx_factory="h", jsx_fragment="F"
        )

    def test_jsx_syntax(self, lcompile_expr):
        assert '<div id={"x"}>{"hi"}</div>' == lcompile_expr(
            '#jsx [:div {:id "x"} "hi"]', output_extension=".jsx"
        )
        assert "<br />" == lcompile_expr("#jsx [:br]", output_extension=".jsx")
        assert '<ul><li>{"a"}</li></ul>' == lcompile_expr(
            '#jsx [:ul #jsx [:li "a"]]', output_extension=".jsx"
        )
        assert '<>{"a"}</>' == lcompile_expr(
            '#jsx [:<> "a"]', output_extension=".jsx"
        )

    def test_jsx_syntax_components(self, lcompile_expr):
        assert "<Foo />" == lcompile_expr("#jsx [js/Foo]", output_extension=".jsx")
        assert "<x.Item />" == lcompile_expr(
            "#jsx [js/x.Item]", output_extension=".jsx"
        )

    def test_jsx_syntax_lowercase_components(self, lcompile_expr):
        compiled = lcompile_expr(
            "(fn [row] #jsx [:ul #jsx [row {:a 1}]])", output_extension=".jsx"
        )
        assert "return <ul>{(() => {" in compiled
        assert "const Component_N = row" in compiled
        assert "return <Component_N a={1} />;" in compiled

    def test_jsx_errors(self, lcompile):
        with pytest.raises(CompilerException):
            lcompile("#jsx []")
        with pytest.raises(CompilerException):
            lcompile("#jsx [1]")
        with pytest.raises(CompilerException):
            lcompile("#jsx [:p {1 2}]")

    def test_unknown_tagged_literal(self, lcompile, compiler_file_path: str):
        with pytest.raises(ReadError) as e:
            lcompile("#inst 1")
        assert compiler_file_path == e.value.filename


class TestDefClass:
    def test_defclass(self, lcompile):
        assert (
            js(
                "var Point = class Point {",
                "  x = 0;",
                "  constructor(x_N) {",
                "    return (this.x = x_N);",
                "  }",
                "  norm() {",
                "    const this_N = this;",
                "    return this_N.x;",
                "  }",
                "};",
                "export { Point };",
            )
            == lcompile(
                """
                (defclass Point
                  (field x 0)
                  (constructor [this x] (set! (.-x this) x))
                  (norm [this] (.-x this)))
                """
            )
        )

    def test_defclass_extends(self, lcompile):
        assert (
            js(
                "var Oops = class Oops extends Error {",
                "  constructor(m_N) {",
                "    return super(m_N);",
                "  }",
                "};",
                "export { Oops };",
            )
            == lcompile(
                "(defclass Oops (extends js/Error) (constructor [this m] (super m)))"
            )
        )

    def test_defclass_errors(self, lcompile):
        with pytest.raises(CompilerException):
            lcompile("(defclass)")
        with pytest.raises(CompilerException):
            lcompile("(defclass a/B)")
        with pytest.raises(CompilerException, match="`this` parameter"):
            lcompile("(defclass A (m []))")
        with pytest.raises(CompilerException):
            lcompile("(defclass A (extends js/B) (extends js/C))")
        with pytest.raises(CompilerException):
            lcompile("(defclass A (constructor [this]) (constructor [this]))")
        with pytest.raises(CompilerException):
            lcompile("(defclass A (^:async constructor [this]))")
        with pytest.raises(UnsupportedFormError):
            lcompile("(defclass A (m [this] (super 1)))")
        with pytest.raises(UnsupportedFormError):
            lcompile("(super 1)")


class TestRequire:
    def test_ns_requires(self, lcompile, registry: NamespaceRegistry):
        code = """
        (ns app.main
          (:require [app.util :as u]
                    [app.views :refer [render]]
                    ["react" :default React]
                    [clojure.string :as str]))
        (u/helper 1)
        (render)
        (str/join "," [1])
        (str "a" 1)
        """
        assert (
            js(
                "import { str as core_str } from 'glint-core';",
                "import * as u from './util.mjs';",
                "import { render } from './views.mjs';",
                "import React from 'react';",
                "import * as str from 'glint-core/string';",
                "u.helper(1);",
                "render();",
                'str.join(",", [1]);',
                'core_str("a", 1);',
            )
            == lcompile(code)
        )
        assert "app.main" == registry.current_ns.name

    def test_compilation_result(self, registry: NamespaceRegistry):
        result = compiler.compile_str(
            '(ns app.main (:require app.util ["react" :as r]))', registry=registry
        )
        assert "app.main" == result.namespace_name
        assert ("app.util", "react") == result.requires

    def test_nested_namespace_paths(self, lcompile):
        assert js("import * as app_util from '../util.mjs';") == lcompile(
            "(ns app.pages.home (:require app.util))"
        )

    def test_output_extension(self, lcompile):
        assert js("import * as app_util from './util.jsx';") == lcompile(
            "(ns app.main (:require app.util))", output_extension=".jsx"
        )

    def test_stdlib_beside_core_file(self, lcompile):
        assert js("import * as s from './lib/string.mjs';") == lcompile(
            "(ns app.main (:require [clojure.string :as s]))",
            core_module="./lib/glint-core.mjs",
        )

    def test_core_namespace_requires_are_elided(self, lcompile):
        assert "" == lcompile("(ns app.main (:require [clojure.core :as c]))")

    def test_macro_requires_are_elided(self, lcompile):
        assert "" == lcompile("(ns app.main (:require-macros [app.macros :as m]))")

    def test_require_form(self, lcompile):
        assert js("import * as lodash from 'lodash';") == lcompile(
            '(require "lodash")'
        )

    def test_known_namespace_defs_are_checked(self, lcompile):
        lcompile("(ns app.util) (def helper 1)")
        lcompile("(ns app.main (:require [app.util :as u])) (u/helper)")
        with pytest.raises(UnresolvedSymbolError):
            lcompile("(ns app.main (:require [app.util :as u])) (u/nope)")

    def test_excluded_core_names(self, lcompile):
        with pytest.raises(UnresolvedSymbolError):
            lcompile("(ns app.main (:refer-clojure :exclude [inc])) (inc 1)")

    def test_ns_errors(self, lcompile):
        with pytest.raises(CompilerException):
            lcompile("(ns)")
        with pytest.raises(CompilerException):
            lcompile("(ns app.main (:import [a b]))")
        with pytest.raises(CompilerException):
            lcompile("(ns app.main (:require [app.util :as]))")
        with pytest.raises(CompilerException):
            lcompile('(ns app.main (:require-macros "macros"))')
        with pytest.raises(CompilerException):
            lcompile("(ns app.main (:refer-clojure :only [inc]))")


class TestMacroForms:
    def test_core_macros_expand(self, lcompile_expr):
        assert "(true ? 1 : null)" == lcompile_expr("(when true 1)")

    def test_defmacro_without_interpreter(self, lcompile):
        with pytest.raises(MacroError, match="unable to define macro user/m"):
            lcompile("(defmacro m [x] x)")

    def test_final_defmacro_is_defined_once(self, lcompile_expr):
        class RecordingEvaluator(CoreMacroEvaluator):
            def __init__(self):
                super().__init__()
                self.defined: list[str] = []

            def define(self, ns, name, form):
                self.defined.append(f"{ns}/{name}")
                self.register(ns, name, lambda _, x: x)

        evaluator = RecordingEvaluator()
        assert "null" == lcompile_expr("(defmacro m [x] x)", evaluator=evaluator)
        assert ["user/m"] == evaluator.defined

    def test_syntax_quote_outside_macros(self, lcompile):
        with pytest.raises(UnsupportedFormError, match="macro definitions"):
            lcompile("(syntax-quote a)")
