import os
import pathlib

import pytest

from glint import build as build
from glint.lang import compiler as compiler
from glint.lang.compiler.exception import IllegalRecurError


@pytest.fixture
def make_file(tmp_path: pathlib.Path):
    def _make_file(name: str, source: str) -> str:
        path = tmp_path / "src" / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(source)
        return str(path)

    return _make_file


def unit(ns: str, *requires: str) -> build.SourceUnit:
    return build.SourceUnit(f"{ns}.cljs", ns, requires)


class TestReadSourceUnit:
    def test_requires(self, make_file):
        path = make_file(
            "main.cljs",
            """
            (ns app.main
              (:require [app.util :as u]
                        app.views
                        ["react" :as r]
                        [app.util :refer [helper]])
              (:require-macros [app.macros :as m]))
            (u/helper 1)
            """,
        )
        assert build.SourceUnit(
            path, "app.main", ("app.util", "app.views")
        ) == build.read_source_unit(path)

    def test_no_requires(self, make_file):
        path = make_file("util.cljs", "(ns app.util)")
        assert build.SourceUnit(path, "app.util") == build.read_source_unit(path)

    @pytest.mark.parametrize("source", ["", "(def x 1)", "(ns)", '(ns "app")'])
    def test_missing_ns_form(self, make_file, source: str):
        path = make_file("bad.cljs", source)
        with pytest.raises(build.BuildError):
            build.read_source_unit(path)


class TestDependencyLevels:
    def test_levels(self):
        main = unit("app.main", "app.views", "app.util", "react.dom")
        views = unit("app.views", "app.util")
        util = unit("app.util")
        other = unit("app.other")
        assert [[other, util], [views], [main]] == build.dependency_levels(
            [main, views, util, other]
        )

    def test_self_require_is_ignored(self):
        u = unit("app.util", "app.util")
        assert [[u]] == build.dependency_levels([u])

    def test_empty(self):
        assert [] == build.dependency_levels([])

    def test_cycle(self):
        with pytest.raises(build.BuildError):
            build.dependency_levels(
                [unit("a", "b"), unit("b", "c"), unit("c", "a"), unit("d")]
            )

    def test_duplicate_namespace(self):
        with pytest.raises(build.BuildError):
            build.dependency_levels(
                [
                    build.SourceUnit("one.cljs", "app.util"),
                    build.SourceUnit("two.cljs", "app.util"),
                ]
            )


@pytest.mark.parametrize(
    "ns,ext,expected",
    [
        ("app.main", None, os.path.join("out", "app", "main.mjs")),
        ("app.my-page", None, os.path.join("out", "app", "my_page.mjs")),
        ("core", ".jsx", os.path.join("out", "core.jsx")),
    ],
)
def test_output_path(ns: str, ext, expected: str):
    opts = compiler.compiler_opts(output_extension=ext)
    assert expected == build.output_path("out", ns, opts)


class TestBuild:
    def test_build_in_dependency_order(self, make_file):
        main = make_file(
            "main.cljs",
            "(ns app.main (:require [app.util :as u])) (u/helper 1)",
        )
        util = make_file("util.cljs", "(ns app.util) (def helper 1)")

        result = build.build([main, util])

        assert result.ok
        assert {main, util} == set(result.compiled)
        assert "app.main" == result.compiled[main].namespace_name
        assert (
            "import * as u from './util.mjs';\nu.helper(1);\n"
            == result.compiled[main].output_text
        )
        assert {} == result.outputs

    def test_unknown_names_in_required_namespace(self, make_file):
        main = make_file(
            "main.cljs",
            "(ns app.main (:require [app.util :as u])) (u/nope 1)",
        )
        util = make_file("util.cljs", "(ns app.util) (def helper 1)")

        result = build.build([main, util], max_workers=1)

        assert not result.ok
        assert [main] == list(result.failed)
        assert [util] == list(result.compiled)

    def test_write_outputs(self, make_file, tmp_path: pathlib.Path):
        main = make_file(
            "main.cljs",
            "(ns app.main (:require [app.util :as u])) (u/helper 1)",
        )
        util = make_file("util.cljs", "(ns app.util) (def helper 1)")
        out = tmp_path / "out"

        result = build.build([main, util], output_dir=str(out))

        assert result.ok
        main_target = out / "app" / "main.mjs"
        util_target = out / "app" / "util.mjs"
        assert {main: str(main_target), util: str(util_target)} == result.outputs
        assert "var helper = 1;\nexport { helper };\n" == util_target.read_text()
        assert main_target.read_text().startswith("import * as u from './util.mjs';")

    def test_failure_skips_dependents(self, make_file, tmp_path: pathlib.Path):
        bad = make_file("bad.cljs", "(ns app.bad) (recur 1)")
        dep = make_file("dep.cljs", "(ns app.dep (:require app.bad))")
        top = make_file("top.cljs", "(ns app.top (:require app.dep))")
        ok = make_file("ok.cljs", "(ns app.ok) (def x 1)")
        out = tmp_path / "out"

        result = build.build([bad, dep, top, ok], output_dir=str(out))

        assert not result.ok
        assert [ok] == list(result.compiled)
        assert [bad] == list(result.failed)
        assert isinstance(result.failed[bad], IllegalRecurError)
        assert {dep: "app.bad", top: "app.bad"} == result.skipped
        assert (out / "app" / "ok.mjs").exists()
        assert not (out / "app" / "dep.mjs").exists()

    def test_cyclic_files(self, make_file):
        a = make_file("a.cljs", "(ns app.a (:require app.b))")
        b = make_file("b.cljs", "(ns app.b (:require app.a))")
        with pytest.raises(build.BuildError):
            build.build([a, b])
