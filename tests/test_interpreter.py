import json

import pytest

from errors import ConfigurationError, TMRuntimeError
from interner import HALT, HALT_NAME
from interpreter import Interpreter, InterpreterConfig, TracebackFormatter
from machine import Failed, Halted
from parser import MachineDecl, RunCommand, TransitionDecl


THREE_STEP = """\
walk:
s1 1 2 <- s2
s2 1 3 <- s3
s3 _ 4 -- <H>
"""


def _interpreter(source, **kwargs):
    out = []
    interp = Interpreter(source=source, filename="<string>", output_sink=out.append, **kwargs)
    return interp, out


def test_run_reports_halt_and_position():
    interp, out = _interpreter(THREE_STEP + "run walk 1 s1 [1, 1]\n")
    results = interp.run()
    assert out == ["walk: Halted in state <H> at position -1"]
    assert isinstance(results[0].outcome, Halted)
    tape = interp.tapes["walk"]
    symbols = interp.symbols
    assert [symbols.resolve(tape.read(p)) for p in (1, 0, -1)] == ["2", "3", "4"]


def test_failure_does_not_stop_later_commands():
    interp, out = _interpreter(
        THREE_STEP
        + "run walk 0 s1 [1, x]\n"
        + "run walk 1 s1 [1, 1]\n"
    )
    results = interp.run()
    assert out == [
        "walk: Failed in state s2 at position -1: no transition defined for (s2, _)",
        "walk: Halted in state <H> at position -1",
    ]
    assert [r.ok for r in results] == [False, True]
    failed = results[0].outcome
    assert isinstance(failed, Failed)
    assert interp.states.resolve(failed.state) == "s2"


def test_halt_state_is_id_zero_before_any_declaration():
    interp, _ = _interpreter("zeta:\nalpha a a -- beta\n")
    assert interp.states.resolve(HALT) == HALT_NAME
    interp.run()
    assert interp.states.names() == [HALT_NAME, "alpha", "beta"]


def test_registration_interns_in_declaration_order():
    interp, _ = _interpreter("m:\nq0 a b -> q1\nq1 c d <- <H>\n")
    interp.run()
    assert interp.states.snapshot() == {"<H>": 0, "q0": 1, "q1": 2}
    assert interp.symbols.snapshot() == {"_": 0, "a": 1, "b": 2, "c": 3, "d": 4}


def test_machines_share_interners():
    interp, out = _interpreter(
        "left:\nq 1 1 <- <H>\n"
        "right:\nq 1 1 -> <H>\n"
        "run left 0 q [1]\n"
        "run right 0 q [1]\n"
    )
    interp.run()
    assert interp.machines["left"].states is interp.machines["right"].states
    assert interp.states.names() == ["<H>", "q"]
    assert out == [
        "left: Halted in state <H> at position -1",
        "right: Halted in state <H> at position 1",
    ]


def test_duplicate_transition_skips_only_that_machine():
    interp, out = _interpreter(
        "bad:\nq a b -> q\nq a c -> <H>\nz z z -- <H>\n"
        "good:\nq a a -- <H>\n"
        "run good 0 q [a]\n"
    )
    results = interp.run()
    assert "bad" not in interp.machines
    assert "good" in interp.machines
    assert len(interp.configuration_errors) == 1
    assert out[0] == "Configuration error: Machine 'bad': duplicate transition for (q, a)"
    assert out[1] == "good: Halted in state <H> at position 0"
    assert results[0].ok
    # ids interned before the error remain usable
    assert interp.symbols.lookup("b") is not None
    assert interp.states.lookup("z") is None


def test_redeclared_machine_is_a_configuration_error():
    interp, _ = _interpreter("")
    decl = MachineDecl(name="m", transitions=[TransitionDecl("q", "a", "a", "stay", "<H>")])
    interp.register(decl)
    with pytest.raises(ConfigurationError, match="already declared"):
        interp.register(decl)


def test_unknown_machine_is_a_runtime_error():
    interp, _ = _interpreter("run ghost 0 q []\n")
    with pytest.raises(TMRuntimeError, match="'ghost' is not defined") as info:
        interp.run()
    assert info.value.location.line == 1
    assert info.value.step_index is not None


def test_trace_prints_each_step_before_outcome():
    interp, out = _interpreter(THREE_STEP + "trace walk 1 s1 [1, 1]\n")
    results = interp.run()
    assert out == [
        "walk [0] s1 1 2 <- s2 (head 1 -> 0)",
        "walk [1] s2 1 3 <- s3 (head 0 -> -1)",
        "walk [2] s3 _ 4 -- <H> (head -1 -> -1)",
        "walk: Halted in state <H> at position -1",
    ]
    assert results[0].lines == out


def test_render_matches_run():
    run_interp, run_out = _interpreter(THREE_STEP + "run walk 1 s1 [1, 1]\n")
    render_interp, render_out = _interpreter(THREE_STEP + "render walk 1 s1 [1, 1]\n")
    run_interp.run()
    render_interp.run()
    assert run_out == render_out
    assert run_interp.tapes["walk"] == render_interp.tapes["walk"]


def test_trace_all_applies_to_run():
    interp, out = _interpreter(THREE_STEP + "run walk 1 s1 [1, 1]\n", config=InterpreterConfig(trace_all=True))
    interp.run()
    assert len(out) == 4


def test_max_steps_guard():
    interp, out = _interpreter(
        "loop:\nq _ _ -> q\nrun loop 0 q []\n",
        config=InterpreterConfig(max_steps=10),
    )
    results = interp.run()
    assert out == ["loop: Failed in state q at position 10: step limit of 10 exceeded"]
    assert not results[0].ok


def test_small_chunks_and_custom_blank():
    interp, out = _interpreter(
        "fill:\nq B x <- q\nq a a -- <H>\nrun fill 5 q [a]\n",
        config=InterpreterConfig(chunk_size=2, blank_name="B"),
    )
    interp.run()
    assert out == ["fill: Halted in state <H> at position 0"]
    tape = interp.tapes["fill"]
    assert tape.chunk_size == 2
    assert interp.symbols.resolve(0) == "B"
    assert [interp.symbols.resolve(tape.read(p)) for p in range(6)] == ["a", "x", "x", "x", "x", "x"]


def test_start_in_halt_state():
    interp, out = _interpreter("m:\nq a a -- <H>\nrun m 4 <H> [a]\n")
    interp.run()
    assert out == ["m: Halted in state <H> at position 4"]


def test_execute_accepts_decoded_commands_directly():
    interp, out = _interpreter("")
    interp.register(
        MachineDecl(name="m", transitions=[TransitionDecl("q", "1", "0", "right", "<H>")])
    )
    result = interp.execute(RunCommand(kind="run", machine="m", head=0, start_state="q", tape=["1"]))
    assert result.ok
    assert out == ["m: Halted in state <H> at position 1"]
    assert interp.symbols.resolve(result.tape.read(0)) == "0"


def test_state_log_records_commands():
    interp, _ = _interpreter(THREE_STEP + "run walk 1 s1 [1, 1]\n", verbose=True)
    interp.run()
    rules = [e.rewrite_record["rule"] for e in interp.logger.entries]
    assert rules == ["SEED", "DECLARE", "RUN", "HALT"]
    halt = interp.logger.entries[-1]
    assert halt.snapshot["state"] == HALT_NAME
    assert halt.snapshot["head"] == -1
    assert halt.rewrite_record["steps"] == 3


def test_traceback_formatter_text_and_json():
    interp, _ = _interpreter("run ghost 0 q []\n")
    with pytest.raises(TMRuntimeError) as info:
        interp.run()
    formatter = TracebackFormatter(interp)
    text = formatter.format_text(info.value, verbose=False)
    assert "line 1, in <program>" in text
    assert "run ghost 0 q []" in text
    assert text.endswith("TMRuntimeError: Machine 'ghost' is not defined (rewrite: RUN)")
    data = json.loads(formatter.to_json(info.value))
    assert data["error"]["message"] == "Machine 'ghost' is not defined"
    assert data["traceback"][0]["source_location"]["line"] == 1


def test_config_rejects_negative_step_limit():
    with pytest.raises(ValueError):
        InterpreterConfig(max_steps=-1)


def test_commands_on_rejected_machine_are_skipped():
    interp, out = _interpreter(
        "bad:\nq 1 1 -> <H>\nq 1 0 -> <H>\n"
        "good:\nq 1 0 -> <H>\n"
        "run bad 0 q [1]\n"
        "run good 0 q [1]\n"
    )
    results = interp.run()
    assert out == [
        "Configuration error: Machine 'bad': duplicate transition for (q, 1)",
        "bad: not run, configuration error",
        "good: Halted in state <H> at position 1",
    ]
    assert [r.ok for r in results] == [False, True]
    assert results[0].outcome is None
    assert interp.logger.entries[-3].rewrite_record["rule"] == "SKIP"


def test_redeclaration_keeps_first_machine_runnable():
    interp, out = _interpreter(
        "m:\nq 1 1 -> <H>\n"
        "m:\nq 1 1 <- <H>\n"
        "run m 0 q [1]\n"
    )
    interp.run()
    assert out == [
        "Configuration error: Machine 'm' is already declared",
        "m: Halted in state <H> at position 1",
    ]
