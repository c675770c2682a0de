import importlib.resources
import pathlib
import shutil
import subprocess

import pytest

from glint.lang import compiler as compiler

pytestmark = pytest.mark.skipif(
    shutil.which("node") is None, reason="node is not installed"
)


@pytest.fixture
def run_module(tmp_path: pathlib.Path, registry):
    runtime = importlib.resources.files("glint") / "js" / "core.mjs"
    (tmp_path / "core.mjs").write_text(runtime.read_text(encoding="utf-8"))

    def _run_module(source: str, **opts) -> str:
        """Compile `source` into a module beside the runtime, run it with node and
        return what it printed."""
        result = compiler.compile_str(
            source,
            opts=compiler.compiler_opts(core_module="./core.mjs", **opts),
            registry=registry,
        )
        path = tmp_path / "main.mjs"
        path.write_text(result.output_text)
        proc = subprocess.run(
            ["node", str(path)],
            capture_output=True,
            text=True,
            check=True,
            timeout=10,
        )
        return proc.stdout

    return _run_module


def test_literals(run_module):
    assert '[1,"a","b",[2.5,null]]\n' == run_module(
        '(js/console.log (js/JSON.stringify [1 "a" :b [2.5 nil]]))'
    )


def test_truthiness(run_module):
    assert "t t t t f f f\n" == run_module(
        """
        (defn t [x] (if x "t" "f"))
        (js/console.log (t 0) (t "") (t []) (t {})
                        (t nil) (t false) (t js/undefined))
        """
    )


def test_lazy_sequences_are_not_cached(run_module):
    assert "6\n" == run_module(
        """
        (def log #js [])
        (def xs (map (fn [x] (.push log x) x) [1 2 3]))
        (vec xs)
        (vec xs)
        (js/console.log (count log))
        """
    )


def test_mutating_and_copying_collection_ops(run_module):
    assert "true 1 false 5 2\n" == run_module(
        """
        (def m {:a 0 :b 2})
        (def r (assoc! m :a 1))
        (def c (assoc m :a 5))
        (js/console.log (identical? r m) (get m :a) (identical? c m) (get c :a)
                        (get c :b))
        """
    )


def test_map_destructuring(run_module):
    assert "1 2 3\n" == run_module(
        """
        (let [{:keys [a b] :as m} {:a 1 :b 2 :c 3}]
          (js/console.log a b (get m :c)))
        """
    )


def test_loop_recur_does_not_grow_the_stack(run_module):
    assert "15\n0\n" == run_module(
        """
        (js/console.log
          (loop [i 5 acc 0] (if (zero? i) acc (recur (dec i) (+ acc i)))))
        (js/console.log (loop [i 1000000] (if (pos? i) (recur (dec i)) i)))
        """
    )


def test_jsx_spread_props(run_module):
    assert '{"a":1,"b":3}\n' == run_module(
        """
        (defn h [_ props] props)
        (def App 1)
        (js/console.log (js/JSON.stringify #jsx [App {:& {:a 1 :b 2} :b 3}]))
        """,
        jsx_factory="h",
    )


def test_async_functions(run_module):
    assert "10\n" == run_module(
        """
        (defn ^:async foo [] (js/Promise.resolve 10))
        (def x (js-await (foo)))
        (js/console.log x)
        """
    )


def test_single_expression_bodies(run_module):
    assert "1 42 null\n" == run_module(
        """
        (def y (when true 1))
        (js/console.log y (do 42) (when false 1))
        """
    )


def test_try_finally_without_catch(run_module):
    assert "1\n2\nf\n3\n" == run_module(
        """
        (try (js/console.log 1) (finally (js/console.log 2)))
        (js/console.log (try 3 (finally (js/console.log "f"))))
        """
    )


def test_rest_destructuring_is_lazy(run_module):
    assert "0 1 2\n1 null\n" == run_module(
        """
        (let [[a b & more] (range)] (js/console.log a b (first more)))
        (let [[x & none] [1]] (js/console.log x none))
        """
    )


def test_seq_of_generator_keeps_first_element(run_module):
    assert "[1,2]\n" == run_module(
        """
        (defn ^:gen nums [] (js-yield 1) (js-yield 2))
        (js/console.log (js/JSON.stringify (vec (seq (nums)))))
        """
    )
