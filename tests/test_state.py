import pytest

from patchbot.state import RunPhase, RunState


def test_phases_are_recorded_in_order():
    state = RunState(run_id="octo/demo#1")
    for phase in (RunPhase.PLANNING, RunPhase.GENERATING, RunPhase.DONE):
        state.enter(phase)
    assert [e["phase"] for e in state.events] == ["planning", "generating", "done"]
    assert state.finished


def test_terminal_phase_is_final():
    state = RunState(run_id="octo/demo#1")
    state.enter(RunPhase.FAILED)
    with pytest.raises(RuntimeError):
        state.enter(RunPhase.RESOLVING)
