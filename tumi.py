"""tumi entry point and REPL wiring."""

from __future__ import annotations
import argparse
import sys
from typing import List, Optional

from errors import TMExtensionError, TMParseError, TMRuntimeError
from extensions import HookRegistry, load_extensions
from interpreter import CommandResult, Interpreter, InterpreterConfig, TracebackFormatter
from parser import Program, parse_source


EXIT_OK = 0
EXIT_ERROR = 1
EXIT_CONFIGURATION = 2
EXIT_FAILED = 3


def exit_status(interpreter: Interpreter, results: List[CommandResult]) -> int:
    if interpreter.configuration_errors:
        return EXIT_CONFIGURATION
    if any(not result.ok for result in results):
        return EXIT_FAILED
    return EXIT_OK


def run_repl(verbose: bool, config: InterpreterConfig, hooks: HookRegistry) -> int:
    print("\x1b[38;2;153;221;255mtumi\033[0m REPL. Enter commands, blank line to run a declaration buffer.")
    interpreter = Interpreter(source="", filename="<string>", verbose=verbose, config=config, hooks=hooks)
    buffer: List[str] = []
    # The whole session counts as one program for extension events.
    if not _repl_event(interpreter, "program_start", Program()):
        return EXIT_ERROR

    while True:
        prompt = "\x1b[38;2;153;221;255m>>>\033[0m " if not buffer else "\x1b[38;2;153;221;255m..>\033[0m "
        try:
            line = input(prompt)
        except EOFError:
            print()
            break

        stripped = line.strip()
        if not buffer and stripped == "":
            continue

        # A declaration header opens a buffer; anything else is a one-line command.
        if not buffer and not stripped.endswith(":"):
            source_text = line
        elif stripped == "":
            source_text = "\n".join(buffer)
            buffer.clear()
        else:
            buffer.append(line)
            continue

        try:
            program = parse_source(source_text, "<string>")
            interpreter.register_all(program.declarations)
            for command in program.commands:
                interpreter.execute(command)
        except TMParseError as error:
            print(f"ParseError: {error}", file=sys.stderr)
        except TMRuntimeError as error:
            _print_traceback(interpreter, error)
        # Configuration errors were already reported; keep the session usable.
        interpreter.configuration_errors.clear()
    _repl_event(interpreter, "program_end", interpreter.results)
    return EXIT_OK


def _repl_event(interpreter: Interpreter, event: str, payload: object) -> bool:
    try:
        interpreter.emit_event(event, interpreter, payload)
    except TMRuntimeError as error:
        _print_traceback(interpreter, error)
        return False
    return True


def _print_traceback(interpreter: Interpreter, error: TMRuntimeError) -> None:
    if interpreter.logger.entries:
        error.step_index = interpreter.logger.entries[-1].step_index
    formatter = TracebackFormatter(interpreter)
    print(formatter.format_text(error, verbose=interpreter.verbose), file=sys.stderr)


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="tumi Turing machine interpreter")
    parser.add_argument("program", nargs="?", help="Source file path or literal source with -source")
    parser.add_argument("-source", "--source", dest="source_mode", action="store_true", help="Treat program argument as literal source text")
    parser.add_argument("-verbose", "--verbose", dest="verbose", action="store_true", help="Emit machine snapshots in tracebacks")
    parser.add_argument("--traceback-json", action="store_true", help="Also emit JSON traceback")
    parser.add_argument("--trace-all", action="store_true", help="Print every step for run and render commands too")
    parser.add_argument("--max-steps", type=int, default=None, help="Fail a command after this many steps (default: unbounded)")
    parser.add_argument("--chunk-size", type=int, default=InterpreterConfig.chunk_size, help="Cells per tape chunk")
    parser.add_argument("--blank", default=InterpreterConfig.blank_name, help="Name of the blank symbol")
    parser.add_argument("--ext", action="append", default=[], metavar="PATH", help="Load an extension (.py) or pointer file (.tmx); repeatable")
    return parser


def run_cli(argv: Optional[List[str]] = None) -> int:
    parser = build_arg_parser()
    args = parser.parse_args(argv)

    try:
        config = InterpreterConfig(
            chunk_size=args.chunk_size,
            blank_name=args.blank,
            max_steps=args.max_steps,
            trace_all=args.trace_all,
        )
    except ValueError as exc:
        print(f"Invalid configuration: {exc}", file=sys.stderr)
        return EXIT_ERROR

    try:
        hooks = load_extensions(args.ext)
    except TMExtensionError as exc:
        print(f"ExtensionError: {exc}", file=sys.stderr)
        return EXIT_ERROR

    if args.program is None:
        if args.source_mode:
            print("-source requires a program string", file=sys.stderr)
            return EXIT_ERROR
        return run_repl(verbose=args.verbose, config=config, hooks=hooks)

    if args.source_mode:
        source_text = args.program
        filename = "<string>"
    else:
        filename = args.program
        try:
            with open(filename, "r", encoding="utf-8") as handle:
                source_text = handle.read()
        except OSError as exc:
            print(f"Failed to read {filename}: {exc}", file=sys.stderr)
            return EXIT_ERROR

    interpreter = Interpreter(source=source_text, filename=filename, verbose=args.verbose, config=config, hooks=hooks)
    try:
        results = interpreter.run()
    except TMParseError as error:
        print(f"ParseError: {error}", file=sys.stderr)
        return EXIT_ERROR
    except TMRuntimeError as error:
        formatter = TracebackFormatter(interpreter)
        print(formatter.format_text(error, verbose=args.verbose), file=sys.stderr)
        if args.traceback_json:
            print(formatter.to_json(error), file=sys.stderr)
        return EXIT_ERROR
    return exit_status(interpreter, results)


if __name__ == "__main__":
    raise SystemExit(run_cli())
