from __future__ import annotations
import json
import os
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Set

from errors import ConfigurationError, TMRuntimeError
from extensions import HookRegistry, StepContext
from interner import DEFAULT_BLANK_NAME, StateInterner, SymbolInterner
from lexer import Lexer
from machine import ExecutionOutcome, Failed, Move, Step, Transition, TuringMachine
from parser import MachineDecl, Parser, Program, RunCommand, SourceLocation
from tape import DEFAULT_CHUNK_SIZE, Tape, TapeConfig


COMMAND_RUN = "run"
COMMAND_TRACE = "trace"
COMMAND_RENDER = "render"
COMMAND_KINDS = (COMMAND_RUN, COMMAND_TRACE, COMMAND_RENDER)


@dataclass(frozen=True)
class InterpreterConfig:
    chunk_size: int = DEFAULT_CHUNK_SIZE
    blank_name: str = DEFAULT_BLANK_NAME
    # None keeps execution unbounded.
    max_steps: Optional[int] = None
    # Print every step for run/render commands too.
    trace_all: bool = False

    def __post_init__(self) -> None:
        if self.chunk_size <= 0:
            raise ValueError(f"chunk_size must be positive, got {self.chunk_size}")
        if self.max_steps is not None and self.max_steps < 0:
            raise ValueError(f"max_steps must be non-negative, got {self.max_steps}")

    @property
    def tape_config(self) -> TapeConfig:
        return TapeConfig(chunk_size=self.chunk_size)


@dataclass
class StateEntry:
    step_index: int
    state_id: str
    machine: Optional[str]
    source_location: Optional[SourceLocation]
    statement: Optional[str]
    snapshot: Optional[Dict[str, Any]]
    rewrite_record: Optional[Dict[str, Any]]


class StateLogger:
    def __init__(self, verbose: bool) -> None:
        self.verbose = verbose
        self.entries: List[StateEntry] = []
        self.next_state_index = 0
        self.last_state_id = "seed"

    def record(
        self,
        *,
        machine: Optional[str],
        location: Optional[SourceLocation],
        statement: Optional[str],
        rewrite_record: Optional[Dict[str, Any]] = None,
        snapshot: Optional[Dict[str, Any]] = None,
    ) -> StateEntry:
        rewrite = {} if rewrite_record is None else rewrite_record
        if "from_state_id" not in rewrite:
            rewrite["from_state_id"] = self.last_state_id
        step_index = self.next_state_index
        state_id = f"s_{step_index:06d}"
        rewrite["to_state_id"] = state_id
        entry = StateEntry(
            step_index=step_index,
            state_id=state_id,
            machine=machine,
            source_location=location,
            statement=statement,
            snapshot=snapshot,
            rewrite_record=rewrite,
        )
        self.entries.append(entry)
        self.last_state_id = state_id
        self.next_state_index += 1
        return entry


@dataclass
class CommandResult:
    command: RunCommand
    # None when the command was skipped because its machine was rejected.
    outcome: Optional[ExecutionOutcome]
    tape: Tape
    lines: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.outcome is not None and self.outcome.ok


class Interpreter:
    def __init__(
        self,
        *,
        source: str,
        filename: str,
        verbose: bool = False,
        config: Optional[InterpreterConfig] = None,
        hooks: Optional[HookRegistry] = None,
        output_sink: Optional[Callable[[str], None]] = None,
    ) -> None:
        self.source = source
        self._source_lines = source.splitlines()
        self.filename = filename if filename == "<string>" else os.path.abspath(filename)
        self.verbose = verbose
        self.config = config or InterpreterConfig()
        self.hooks = hooks if hooks is not None else HookRegistry()
        self.output_sink = output_sink or (lambda text: print(text))

        # One pair of tables for the whole program; every machine shares them.
        self.states = StateInterner()
        self.symbols = SymbolInterner(self.config.blank_name)
        self.machines: Dict[str, TuringMachine] = {}
        # Tape left behind by the most recent command on each machine.
        self.tapes: Dict[str, Tape] = {}
        self.results: List[CommandResult] = []
        self.configuration_errors: List[ConfigurationError] = []
        # Machines whose declaration failed; commands naming them are skipped.
        self.rejected: Set[str] = set()
        self.current_command: Optional[RunCommand] = None

        self.logger = StateLogger(verbose=verbose)
        self.logger.record(machine=None, location=None, statement="<seed>", rewrite_record={"rule": "SEED"})

    def parse(self) -> Program:
        lexer = Lexer(self.source, self.filename)
        tokens = lexer.tokenize()
        parser = Parser(tokens, self.filename, self._source_lines)
        return parser.parse().decode()

    def run(self) -> List[CommandResult]:
        return self.execute_program(self.parse())

    def execute_program(self, program: Program) -> List[CommandResult]:
        self.emit_event("program_start", self, program)
        try:
            self.register_all(program.declarations)
            results = [self.execute(command) for command in program.commands]
        except TMRuntimeError as error:
            self.emit_event("on_error", self, error)
            if self.logger.entries:
                error.step_index = self.logger.entries[-1].step_index
            raise
        except Exception as exc:
            self.emit_event("on_error", self, exc)
            # Surface unexpected Python-level exceptions as interpreter errors
            # so the CLI can format them like any other runtime fault.
            loc = self.current_command.location if self.current_command else None
            wrapped = TMRuntimeError(f"Internal interpreter error: {exc}", location=loc, rewrite_rule="internal")
            if self.logger.entries:
                wrapped.step_index = self.logger.entries[-1].step_index
            raise wrapped from exc
        self.emit_event("program_end", self, results)
        return results

    # ---- registration ----

    def register_all(self, declarations: List[MachineDecl]) -> None:
        """Register every declaration; a bad one is reported and skipped."""
        for decl in declarations:
            try:
                self.register(decl)
            except ConfigurationError as error:
                self.configuration_errors.append(error)
                if decl.name not in self.machines:
                    self.rejected.add(decl.name)
                self.logger.record(
                    machine=decl.name,
                    location=decl.location,
                    statement=decl.location.statement if decl.location else None,
                    rewrite_record={"rule": "CONFIG", "error": error.message},
                )
                self.output_sink(f"Configuration error: {error.message}")

    def register(self, decl: MachineDecl) -> TuringMachine:
        if decl.name in self.machines:
            raise ConfigurationError(f"Machine '{decl.name}' is already declared", machine=decl.name)
        machine = TuringMachine(decl.name, self.states, self.symbols)
        machine.check_halt_reserved()
        # Ids interned before a duplicate is found stay in the shared tables;
        # only the machine itself is dropped.
        for t in decl.transitions:
            from_state = self.states.intern(t.from_state)
            read_symbol = self.symbols.intern(t.read_symbol)
            write_symbol = self.symbols.intern(t.write_symbol)
            next_state = self.states.intern(t.next_state)
            machine.add_transition(
                Transition(
                    from_state=from_state,
                    read_symbol=read_symbol,
                    write_symbol=write_symbol,
                    move=Move(t.move),
                    next_state=next_state,
                )
            )
        self.machines[decl.name] = machine
        self.rejected.discard(decl.name)
        self.logger.record(
            machine=decl.name,
            location=decl.location,
            statement=decl.location.statement if decl.location else None,
            rewrite_record={"rule": "DECLARE", "transitions": len(machine.transitions)},
        )
        return machine

    # ---- execution ----

    def build_tape(self, values: List[str]) -> Tape:
        return Tape([self.symbols.intern(v) for v in values], self.config.tape_config)

    def execute(self, command: RunCommand) -> CommandResult:
        if command.kind not in COMMAND_KINDS:
            raise TMRuntimeError(f"Unknown command '{command.kind}'", location=command.location, rewrite_rule="COMMAND")
        if command.machine in self.rejected:
            return self.skip(command)
        machine = self.machines.get(command.machine)
        if machine is None:
            raise TMRuntimeError(
                f"Machine '{command.machine}' is not defined",
                location=command.location,
                rewrite_rule=command.kind.upper(),
            )
        self.current_command = command
        self.emit_event("before_command", self, command)
        self._log_command(command, rule=command.kind.upper())

        tape = self.build_tape(command.tape)
        start_state = self.states.intern(command.start_state)
        tracing = command.kind == COMMAND_TRACE or self.config.trace_all
        lines: List[str] = []

        on_step: Optional[Callable[[Step], None]] = None
        if tracing or self.hooks.has_step_rules:
            def record_step(step: Step) -> None:
                if tracing:
                    line = self.format_step(machine, step)
                    lines.append(line)
                    self.output_sink(line)
                    self._log_command(command, rule="STEP", extra={"step": step.index, "head": step.head_after})
                self._after_step(machine, step, command)

            on_step = record_step

        outcome = machine.run(tape, start_state, command.head, max_steps=self.config.max_steps, on_step=on_step)
        summary = self.format_outcome(machine, outcome)
        lines.append(summary)
        self.output_sink(summary)
        self._log_command(
            command,
            rule="HALT" if outcome.ok else "FAIL",
            extra={"head": outcome.head, "steps": outcome.steps},
        )

        self.tapes[machine.name] = tape
        result = CommandResult(command=command, outcome=outcome, tape=tape, lines=lines)
        self.results.append(result)
        self.emit_event("after_command", self, command, result)
        self.current_command = None
        return result

    def skip(self, command: RunCommand) -> CommandResult:
        """Report a command whose machine failed registration and move on."""
        line = f"{command.machine}: not run, configuration error"
        self.output_sink(line)
        self._log_command(command, rule="SKIP")
        result = CommandResult(command=command, outcome=None, tape=self.build_tape(command.tape), lines=[line])
        self.results.append(result)
        return result

    def format_outcome(self, machine: TuringMachine, outcome: ExecutionOutcome) -> str:
        state = self.states.describe(outcome.state)
        if isinstance(outcome, Failed):
            return f"{machine.name}: Failed in state {state} at position {outcome.head}: {outcome.reason}"
        return f"{machine.name}: Halted in state {state} at position {outcome.head}"

    def format_step(self, machine: TuringMachine, step: Step) -> str:
        t = step.transition
        return (
            f"{machine.name} [{step.index}] "
            f"{self.states.describe(t.from_state)} {self.symbols.describe(t.read_symbol)} "
            f"{self.symbols.describe(t.write_symbol)} {t.move.arrow} {self.states.describe(t.next_state)} "
            f"(head {step.head_before} -> {step.head_after})"
        )

    def snapshot(self, machine: TuringMachine) -> Dict[str, Any]:
        return {
            "machine": machine.name,
            "state": self.states.describe(machine.current_state),
            "head": machine.head,
            "states": len(self.states),
            "symbols": len(self.symbols),
        }

    def _log_command(self, command: RunCommand, *, rule: str, extra: Optional[Dict[str, Any]] = None) -> None:
        machine = self.machines.get(command.machine)
        rewrite: Dict[str, Any] = {"rule": rule}
        if extra:
            rewrite.update(extra)
        self.logger.record(
            machine=command.machine,
            location=command.location,
            statement=command.location.statement if command.location else None,
            rewrite_record=rewrite,
            snapshot=self.snapshot(machine) if (self.verbose and machine is not None) else None,
        )

    def _after_step(self, machine: TuringMachine, step: Step, command: RunCommand) -> None:
        try:
            self.hooks.after_step(
                self,
                StepContext(step_index=step.index, machine=machine.name, step=step, location=command.location),
            )
        except TMRuntimeError:
            raise
        except Exception as exc:
            raise TMRuntimeError(
                f"Extension step rule failed: {exc}",
                location=command.location,
                rewrite_rule="EXT",
            ) from exc

    def emit_event(self, event: str, *args: Any) -> None:
        try:
            self.hooks.emit(event, *args)
        except TMRuntimeError:
            raise
        except Exception as exc:
            loc = self.current_command.location if self.current_command else None
            raise TMRuntimeError(
                f"Extension hook '{event}' failed: {exc}",
                location=loc,
                rewrite_rule="EXT",
            ) from exc


@dataclass
class TracebackFrame:
    name: str
    location: Optional[SourceLocation]
    statement: Optional[str]
    state_entry: Optional[StateEntry]


class TracebackFormatter:
    def __init__(self, interpreter: Interpreter) -> None:
        self.interpreter = interpreter

    def build_frames(self, error: TMRuntimeError) -> List[TracebackFrame]:
        entries = self.interpreter.logger.entries
        last = entries[-1] if entries else None
        location = error.location if error.location is not None else (last.source_location if last else None)
        statement = location.statement if location is not None else None
        return [TracebackFrame(name="<program>", location=location, statement=statement, state_entry=last)]

    def format_text(self, error: TMRuntimeError, verbose: bool) -> str:
        lines = ["Traceback (most recent call last):"]
        for frame in self.build_frames(error):
            if frame.location:
                lines.append(f"  File \"{frame.location.file}\", line {frame.location.line}, in {frame.name}")
                if frame.statement:
                    lines.append(f"    {frame.statement}")
            else:
                lines.append(f"  <unknown location> in {frame.name}")
            if frame.state_entry:
                lines.append(
                    f"    State log index: {frame.state_entry.step_index}  State id: {frame.state_entry.state_id}"
                )
                if verbose and frame.state_entry.snapshot is not None:
                    snapshot = ", ".join(f"{k}={v}" for k, v in frame.state_entry.snapshot.items())
                    lines.append(f"    Machine snapshot: {snapshot}")
        rule = error.rewrite_rule or "runtime"
        lines.append(f"{error.__class__.__name__}: {error.message} (rewrite: {rule})")
        return "\n".join(lines)

    def to_json(self, error: TMRuntimeError) -> str:
        frames_json: List[Dict[str, Any]] = []
        for index, frame in enumerate(self.build_frames(error)):
            entry: Dict[str, Any] = {"frame_index": index, "name": frame.name}
            if frame.location:
                entry["source_location"] = {
                    "file": frame.location.file,
                    "line": frame.location.line,
                    "statement": frame.location.statement,
                }
            if frame.state_entry:
                entry["state_id"] = frame.state_entry.state_id
                entry["step_index"] = frame.state_entry.step_index
                if frame.state_entry.snapshot is not None:
                    entry["snapshot"] = frame.state_entry.snapshot
                if frame.state_entry.rewrite_record is not None:
                    entry["rewrite_record"] = frame.state_entry.rewrite_record
            frames_json.append(entry)
        data = {
            "error": {
                "type": error.__class__.__name__,
                "message": error.message,
                "failing_step_index": error.step_index,
            },
            "traceback": frames_json,
        }
        return json.dumps(data, indent=2)
