import argparse
import importlib.metadata
import os
import sys
from collections.abc import Sequence
from typing import Any, Callable, Optional

from glint import build as build_
from glint.lang import compiler as compiler
from glint.lang import reader as reader
from glint.lang.exception import GlintError, print_exception
from glint.lang.typing import CompilerOpts
from glint.logconfig import configure_root_logger
from glint.prompt import get_prompter

REPL_INPUT_FILE_PATH = "<REPL Input>"
STDIN_INPUT_FILE_PATH = "<stdin>"
STDIN_FILE_NAME = "-"

BOOL_TRUE = frozenset({"true", "t", "1", "yes", "y"})
BOOL_FALSE = frozenset({"false", "f", "0", "no", "n"})

DEFAULT_COMPILER_OPTS = {k.name: v for k, v in compiler.compiler_opts().items()}


def _to_bool(v: Optional[str]) -> Optional[bool]:
    """Coerce a string argument to a boolean value, if possible."""
    if v is None:
        return v
    elif v.lower() in BOOL_TRUE:
        return True
    elif v.lower() in BOOL_FALSE:
        return False
    else:
        raise argparse.ArgumentTypeError("Unable to coerce flag value to boolean.")


def _to_int(v: Optional[str]) -> Optional[int]:
    if v is None:
        return v
    try:
        return int(v)
    except ValueError as e:
        raise argparse.ArgumentTypeError(f"Expected an integer, got {v!r}.") from e


def _set_envvar_action(
    var: str, parent: type[argparse.Action] = argparse.Action
) -> type[argparse.Action]:
    """Return an argparse.Action instance (deriving from `parent`) that sets the value
    as the default value of the environment variable `var`."""

    class EnvVarSetterAction(parent):  # type: ignore
        def __call__(  # pylint: disable=signature-differs
            self,
            parser: argparse.ArgumentParser,
            namespace: argparse.Namespace,
            values: Any,
            option_string: str,
        ):
            os.environ.setdefault(var, str(values))

    return EnvVarSetterAction


def _add_compiler_arg_group(parser: argparse.ArgumentParser) -> None:
    group = parser.add_argument_group(
        "compiler arguments",
        description=(
            "The compiler arguments below tweak the JavaScript emitted by the "
            "compiler. Each argument falls back to the environment variable named "
            "in its description when it is not given."
        ),
    )
    group.add_argument(
        "--context",
        choices=sorted(compiler.COMPILE_CONTEXTS),
        default=os.getenv("GLINT_CONTEXT"),
        help=(
            "the syntactic position the final form is compiled for "
            "(env: GLINT_CONTEXT; default: "
            f"{DEFAULT_COMPILER_OPTS['context']})"
        ),
    )
    group.add_argument(
        "--elide-imports",
        action="store",
        nargs="?",
        const="true",
        default=os.getenv("GLINT_ELIDE_IMPORTS"),
        type=_to_bool,
        help=(
            "if true, do not emit import declarations "
            "(env: GLINT_ELIDE_IMPORTS; default: "
            f"{DEFAULT_COMPILER_OPTS['elide-imports']})"
        ),
    )
    group.add_argument(
        "--elide-exports",
        action="store",
        nargs="?",
        const="true",
        default=os.getenv("GLINT_ELIDE_EXPORTS"),
        type=_to_bool,
        help=(
            "if true, do not emit an export declaration for public definitions "
            "(env: GLINT_ELIDE_EXPORTS; default: "
            f"{DEFAULT_COMPILER_OPTS['elide-exports']})"
        ),
    )
    group.add_argument(
        "--core-alias",
        default=os.getenv("GLINT_CORE_ALIAS"),
        help=(
            "if given, refer to core library functions as members of this global "
            "name rather than importing them (env: GLINT_CORE_ALIAS)"
        ),
    )
    group.add_argument(
        "--core-module",
        default=os.getenv("GLINT_CORE_MODULE"),
        help=(
            "the module specifier core library functions are imported from "
            "(env: GLINT_CORE_MODULE; default: "
            f"{DEFAULT_COMPILER_OPTS['core-module']})"
        ),
    )
    group.add_argument(
        "--output-extension",
        default=os.getenv("GLINT_OUTPUT_EXTENSION"),
        help=(
            "the file extension of compiled modules; `.jsx` emits JSX markup "
            "(env: GLINT_OUTPUT_EXTENSION; default: "
            f"{DEFAULT_COMPILER_OPTS['output-extension']})"
        ),
    )
    group.add_argument(
        "--jsx-factory",
        default=os.getenv("GLINT_JSX_FACTORY"),
        help=(
            "the function called to create JSX elements "
            "(env: GLINT_JSX_FACTORY; default: "
            f"{DEFAULT_COMPILER_OPTS['jsx-factory']})"
        ),
    )
    group.add_argument(
        "--jsx-fragment",
        default=os.getenv("GLINT_JSX_FRAGMENT"),
        help=(
            "the component used for JSX fragments "
            "(env: GLINT_JSX_FRAGMENT; default: "
            f"{DEFAULT_COMPILER_OPTS['jsx-fragment']})"
        ),
    )
    group.add_argument(
        "--max-macroexpand-depth",
        default=os.getenv("GLINT_MAX_MACROEXPAND_DEPTH"),
        type=_to_int,
        help=(
            "the number of times a form may be macroexpanded before compilation "
            "fails (env: GLINT_MAX_MACROEXPAND_DEPTH; default: "
            f"{DEFAULT_COMPILER_OPTS['max-macroexpand-depth']})"
        ),
    )


def _compiler_opts(
    args: argparse.Namespace, repl: Optional[bool] = None
) -> CompilerOpts:
    return compiler.compiler_opts(
        context=args.context,
        elide_imports=args.elide_imports,
        elide_exports=args.elide_exports,
        core_alias=args.core_alias,
        core_module=args.core_module,
        output_extension=args.output_extension,
        jsx_factory=args.jsx_factory,
        jsx_fragment=args.jsx_fragment,
        repl=repl,
        max_macroexpand_depth=args.max_macroexpand_depth,
    )


def _add_debug_arg_group(parser: argparse.ArgumentParser) -> None:
    group = parser.add_argument_group("debug options")
    group.add_argument(
        "--enable-logger",
        action=_set_envvar_action("GLINT_USE_DEV_LOGGER", parent=argparse._StoreAction),
        nargs="?",
        const=True,
        type=_to_bool,
        help=(
            "if true, enable the glint root logger "
            "(env: GLINT_USE_DEV_LOGGER; default: false)"
        ),
    )
    group.add_argument(
        "-l",
        "--log-level",
        action=_set_envvar_action("GLINT_LOGGING_LEVEL", parent=argparse._StoreAction),
        type=lambda s: s.upper(),
        default="WARNING",
        help=(
            "the logging level for logs emitted by the glint compiler "
            "(env: GLINT_LOGGING_LEVEL; default: WARNING)"
        ),
    )


Handler = Callable[[argparse.ArgumentParser, argparse.Namespace], None]


def _subcommand(
    subcommand: str,
    *,
    help: Optional[str] = None,  # pylint: disable=redefined-builtin
    description: Optional[str] = None,
    handler: Handler,
) -> Callable[
    [Callable[[argparse.ArgumentParser], None]],
    Callable[["argparse._SubParsersAction"], None],
]:
    def _wrap_add_subcommand(
        f: Callable[[argparse.ArgumentParser], None],
    ) -> Callable[["argparse._SubParsersAction"], None]:
        def _wrapped_subcommand(subparsers: "argparse._SubParsersAction"):
            parser = subparsers.add_parser(
                subcommand, help=help, description=description
            )
            parser.set_defaults(handler=handler)
            f(parser)

        return _wrapped_subcommand

    return _wrap_add_subcommand


def _compile_one(path: str, opts: CompilerOpts) -> compiler.CompilationResult:
    if path == STDIN_FILE_NAME:
        return compiler.compile_str(
            sys.stdin.read(), opts=opts, filename=STDIN_INPUT_FILE_PATH
        )
    return compiler.compile_file(path, opts=opts)


def compile_(
    parser: argparse.ArgumentParser,
    args: argparse.Namespace,
) -> None:
    opts = _compiler_opts(args)

    if args.output_dir is None:
        if len(args.files) != 1:
            parser.error("an output directory is required to compile multiple files")
        try:
            result = _compile_one(args.files[0], opts)
        except (GlintError, OSError) as e:
            print_exception(e)
            sys.exit(1)
        sys.stdout.write(result.output_text)
        return

    if STDIN_FILE_NAME in args.files:
        parser.error("standard input cannot be compiled into an output directory")

    try:
        result = build_.build(
            args.files,
            opts=opts,
            output_dir=args.output_dir,
            max_workers=args.jobs,
        )
    except GlintError as e:
        print_exception(e)
        sys.exit(1)

    for path, target in result.outputs.items():
        print(f"{path} -> {target}")
    for path, e in result.failed.items():
        print(f"Failed to compile {path}", file=sys.stderr)
        print_exception(e)
    for path, blocker in result.skipped.items():
        print(f"Skipped {path}: requires failed namespace {blocker}", file=sys.stderr)
    if not result.ok:
        sys.exit(1)


@_subcommand(
    "compile",
    help="compile glint source files to JavaScript",
    description=(
        "Compile glint source files into JavaScript modules. A single file is "
        "written to standard out unless an output directory is given. Multiple "
        "files are compiled in the order required by their namespace dependencies."
    ),
    handler=compile_,
)
def _add_compile_subcommand(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "files",
        nargs="+",
        help=f"glint source files to compile, or {STDIN_FILE_NAME} for standard input",
    )
    parser.add_argument(
        "-o",
        "--output-dir",
        help="write compiled modules beneath this directory",
    )
    parser.add_argument(
        "-j",
        "--jobs",
        type=int,
        default=None,
        help="the number of files which may be compiled at once",
    )
    _add_compiler_arg_group(parser)
    _add_debug_arg_group(parser)


def repl(
    _,
    args: argparse.Namespace,
) -> None:
    if args.elide_exports is None:
        args.elide_exports = True
    opts = _compiler_opts(args, repl=True)
    session = compiler.ReplSession(opts=opts, filename=REPL_INPUT_FILE_PATH)
    prompter = get_prompter(
        completions=session.completions, ns_resolver=session.registry.resolve_alias
    )

    while True:
        try:
            lsrc = prompter.prompt(f"{session.current_ns}=> ")
        except EOFError:
            break
        except KeyboardInterrupt:  # pragma: no cover
            print("")
            continue

        if len(lsrc.strip()) == 0:
            continue

        try:
            result = session.eval_str(lsrc)
        except reader.ReadError as e:
            print_exception(e, reader.ReadError, e.__traceback__)
            continue
        except compiler.CompilerException as e:
            print_exception(e, compiler.CompilerException, e.__traceback__)
            continue
        except Exception as e:  # pylint: disable=broad-exception-caught
            print_exception(e, Exception, e.__traceback__)
            continue

        if result.output_text:
            prompter.print(result.output_text.rstrip("\n"))


@_subcommand(
    "repl",
    help="start the glint REPL",
    description=(
        "Start a glint REPL. Each input is compiled and the emitted JavaScript is "
        "printed; nothing is evaluated."
    ),
    handler=repl,
)
def _add_repl_subcommand(parser: argparse.ArgumentParser) -> None:
    _add_compiler_arg_group(parser)
    _add_debug_arg_group(parser)


def version(_, __) -> None:
    v = importlib.metadata.version("glint")
    print(f"glint {v}")


@_subcommand("version", help="print the version of glint", handler=version)
def _add_version_subcommand(_: argparse.ArgumentParser) -> None:
    pass


def invoke_cli(args: Optional[Sequence[str]] = None) -> None:
    """Entrypoint to run the glint CLI."""
    parser = argparse.ArgumentParser(
        description=(
            "glint compiles a dialect of ClojureScript into readable JavaScript."
        )
    )

    subparsers = parser.add_subparsers(help="sub-commands")
    _add_compile_subcommand(subparsers)
    _add_repl_subcommand(subparsers)
    _add_version_subcommand(subparsers)

    parsed_args = parser.parse_args(args=args)
    if hasattr(parsed_args, "handler"):
        configure_root_logger()
        parsed_args.handler(parser, parsed_args)
    else:
        parser.print_help()


if __name__ == "__main__":
    invoke_cli()
