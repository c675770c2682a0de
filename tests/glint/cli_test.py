import importlib.metadata
import io
import os
import pathlib
from collections.abc import Sequence
from typing import Optional
from unittest.mock import patch

import attr
import pytest

from glint.cli import BOOL_FALSE, BOOL_TRUE, invoke_cli
from glint.prompt import Prompter


@attr.frozen
class CapturedIO:
    out: str
    err: str


@pytest.fixture
def run_cli(monkeypatch, capsys):
    def _run_cli(args: Sequence[str], input: Optional[str] = None):
        if input is not None:
            monkeypatch.setattr(
                "sys.stdin", io.TextIOWrapper(io.BytesIO(input.encode("utf-8")))
            )
        invoke_cli([*args])
        captured = capsys.readouterr()
        return CapturedIO(out=captured.out, err=captured.err)

    return _run_cli


@pytest.fixture
def source_file(tmp_path: pathlib.Path):
    def _source_file(name: str, source: str) -> str:
        path = tmp_path / name
        path.write_text(source)
        return str(path)

    return _source_file


class TestCompile:
    def test_compile_file(self, run_cli, source_file):
        path = source_file("main.cljs", "(ns app.main) (def x 1)")
        result = run_cli(["compile", path])
        assert "var x = 1;\nexport { x };\n" == result.out

    def test_compile_stdin(self, run_cli):
        result = run_cli(["compile", "-"], input="(js/console.log 1)")
        assert "console.log(1);\n" == result.out

    def test_compiler_flags(self, run_cli):
        result = run_cli(
            ["compile", "--elide-exports", "--context", "return", "-"],
            input="(def x 1) x",
        )
        assert "var x = 1;\nreturn x;\n" == result.out

    def test_core_alias_flag(self, run_cli):
        result = run_cli(["compile", "--core-alias", "core", "-"], input="(inc 1)")
        assert "core.inc(1);\n" == result.out

    @pytest.mark.parametrize("val", sorted(BOOL_TRUE))
    def test_valid_true_flag(self, run_cli, val: str):
        result = run_cli(
            ["compile", "--elide-exports", val, "-"], input="(def x 1)"
        )
        assert "var x = 1;\n" == result.out

    @pytest.mark.parametrize("val", sorted(BOOL_FALSE))
    def test_valid_false_flag(self, run_cli, val: str):
        result = run_cli(
            ["compile", "--elide-exports", val, "-"], input="(def x 1)"
        )
        assert "var x = 1;\nexport { x };\n" == result.out

    @pytest.mark.parametrize("val", ["maybe", "not-no", "4"])
    def test_invalid_flag(self, run_cli, val: str):
        with pytest.raises(SystemExit):
            run_cli(["compile", "--elide-exports", val, "-"], input="(def x 1)")

    def test_invalid_context(self, run_cli):
        with pytest.raises(SystemExit):
            run_cli(["compile", "--context", "module", "-"], input="1")

    def test_flags_from_environment(self, run_cli, monkeypatch):
        monkeypatch.setenv("GLINT_ELIDE_EXPORTS", "true")
        monkeypatch.setenv("GLINT_CORE_MODULE", "./core.mjs")
        result = run_cli(["compile", "-"], input="(def x (inc 1))")
        assert "import { inc } from './core.mjs';\nvar x = inc(1);\n" == result.out

    def test_log_level_flag(self, run_cli):
        run_cli(["compile", "-l", "debug", "-"], input="1")
        assert "DEBUG" == os.environ["GLINT_LOGGING_LEVEL"]

    def test_compile_error(self, run_cli):
        with pytest.raises(SystemExit) as e:
            run_cli(["compile", "-"], input="(recur 1)")
        assert 1 == e.value.code

    def test_missing_file(self, run_cli, tmp_path: pathlib.Path):
        with pytest.raises(SystemExit) as e:
            run_cli(["compile", str(tmp_path / "missing.cljs")])
        assert 1 == e.value.code

    def test_multiple_files_require_output_dir(self, run_cli, source_file):
        a = source_file("a.cljs", "(ns app.a)")
        b = source_file("b.cljs", "(ns app.b)")
        with pytest.raises(SystemExit) as e:
            run_cli(["compile", a, b])
        assert 2 == e.value.code

    def test_stdin_cannot_be_built(self, run_cli, tmp_path: pathlib.Path):
        with pytest.raises(SystemExit):
            run_cli(["compile", "-o", str(tmp_path), "-"], input="1")

    def test_build_output_dir(self, run_cli, source_file, tmp_path: pathlib.Path):
        main = source_file(
            "main.cljs", "(ns app.main (:require [app.util :as u])) (u/helper)"
        )
        util = source_file("util.cljs", "(ns app.util) (defn helper [] 1)")
        out = tmp_path / "out"

        result = run_cli(["compile", "-o", str(out), "-j", "2", main, util])

        main_target = out / "app" / "main.mjs"
        util_target = out / "app" / "util.mjs"
        assert {
            f"{util} -> {util_target}",
            f"{main} -> {main_target}",
        } == set(result.out.splitlines())
        assert "import * as u from './util.mjs';\nu.helper();\n" == (
            main_target.read_text()
        )
        assert util_target.exists()

    def test_build_output_extension(
        self, run_cli, source_file, tmp_path: pathlib.Path
    ):
        path = source_file("main.cljs", "(ns app.main) (def x 1)")
        out = tmp_path / "out"
        run_cli(["compile", "--output-extension", ".jsx", "-o", str(out), path])
        assert (out / "app" / "main.jsx").exists()

    def test_build_failure(self, run_cli, source_file, tmp_path: pathlib.Path):
        bad = source_file("bad.cljs", "(ns app.bad) (recur 1)")
        dep = source_file("dep.cljs", "(ns app.dep (:require app.bad))")

        with pytest.raises(SystemExit) as e:
            run_cli(["compile", "-o", str(tmp_path / "out"), bad, dep])

        assert 1 == e.value.code

    def test_build_failure_messages(
        self, source_file, tmp_path: pathlib.Path, capsys
    ):
        bad = source_file("bad.cljs", "(ns app.bad) (recur 1)")
        dep = source_file("dep.cljs", "(ns app.dep (:require app.bad))")

        with pytest.raises(SystemExit):
            invoke_cli(["compile", "-o", str(tmp_path / "out"), bad, dep])

        err = capsys.readouterr().err
        assert f"Failed to compile {bad}" in err
        assert f"Skipped {dep}: requires failed namespace app.bad" in err

    def test_build_cycle(self, run_cli, source_file, tmp_path: pathlib.Path):
        a = source_file("a.cljs", "(ns app.a (:require app.b))")
        b = source_file("b.cljs", "(ns app.b (:require app.a))")
        with pytest.raises(SystemExit) as e:
            run_cli(["compile", "-o", str(tmp_path / "out"), a, b])
        assert 1 == e.value.code


class ScriptedPrompter(Prompter):
    __slots__ = ("_inputs", "printed")

    def __init__(self, inputs: Sequence[str]):
        self._inputs = list(inputs)
        self.printed: list[str] = []

    def prompt(self, msg: str) -> str:
        if not self._inputs:
            raise EOFError()
        self.printed.append(msg)
        return self._inputs.pop(0)

    def print(self, msg: str) -> None:
        self.printed.append(msg)


class TestREPL:
    @pytest.fixture
    def run_repl(self, run_cli):
        def _run_repl(inputs: Sequence[str], *args: str):
            prompter = ScriptedPrompter(inputs)
            with patch("glint.cli.get_prompter", return_value=prompter):
                result = run_cli(["repl", *args])
            return prompter.printed, result

        return _run_repl

    def test_compiles_each_input(self, run_repl):
        printed, _ = run_repl(["(def x 1)", "   ", "(js/console.log x)"])
        assert [
            "user=> ",
            "var x = 1;",
            "user=> ",
            "user=> ",
            "console.log(x);",
        ] == printed

    def test_prompt_follows_namespace(self, run_repl):
        printed, _ = run_repl(["(ns app.main)", "(def y 2)"])
        assert ["user=> ", "app.main=> ", "var y = 2;"] == printed

    def test_errors_do_not_end_session(self, run_repl):
        printed, result = run_repl(["(recur 1)", "(def x", "(def x 1)"])
        assert ["user=> ", "user=> ", "user=> ", "var x = 1;"] == printed
        assert result.err

    def test_exports_can_be_enabled(self, run_repl):
        printed, _ = run_repl(["(def x 1)"], "--elide-exports", "false")
        assert ["user=> ", "var x = 1;\nexport { x };"] == printed


def test_version(run_cli):
    result = run_cli(["version"])
    assert f"glint {importlib.metadata.version('glint')}\n" == result.out


def test_no_subcommand(run_cli):
    result = run_cli([])
    assert "usage" in result.out
