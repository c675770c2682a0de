import os
import re
from typing import Callable, Optional

import pytest

from glint.lang import compiler as compiler
from glint.lang.compiler.macros import MacroEvaluator
from glint.lang.namespace import NamespaceRegistry

CompileFn = Callable[..., str]

# Local names are suffixed with a global counter, as are the temporaries generated
# by core macros, so the suffixes of compiled code vary from run to run
_GENERATED_SUFFIX = re.compile(r"(_+\d+)+\b")


def normalize(js: str) -> str:
    """Replace the generated numeric suffixes of names in `js` with `_N`."""
    return _GENERATED_SUFFIX.sub("_N", js)


@pytest.fixture(autouse=True)
def env_vars():
    environ = set(os.environ.items())
    try:
        yield
    finally:
        os.environ.clear()
        for var, val in environ:
            os.environ[var] = val


@pytest.fixture
def compiler_file_path() -> str:
    return "glint_test_input.cljs"


@pytest.fixture
def registry() -> NamespaceRegistry:
    return NamespaceRegistry()


@pytest.fixture
def lcompile(compiler_file_path: str, registry: NamespaceRegistry) -> CompileFn:
    def _lcompile(
        s: str,
        evaluator: Optional[MacroEvaluator] = None,
        raw: bool = False,
        **opts,
    ) -> str:
        """Compile the code in the input string and return the resulting
        JavaScript, with generated names normalized unless `raw` is True."""
        result = compiler.compile_str(
            s,
            opts=compiler.compiler_opts(**opts),
            filename=compiler_file_path,
            evaluator=evaluator,
            registry=registry,
        )
        return result.output_text if raw else normalize(result.output_text)

    return _lcompile


@pytest.fixture
def lcompile_expr(lcompile: CompileFn) -> CompileFn:
    def _lcompile_expr(s: str, **opts) -> str:
        """Compile the final form of the input string as an expression, returning
        it without its trailing newline."""
        return lcompile(s, context=compiler.EXPR_CONTEXT, **opts).rstrip("\n")

    return _lcompile_expr
