import pytest

from app.backend.busy import BusyGuard
from app.backend.errors import BusyError


def test_second_hold_is_rejected_without_waiting():
    guard = BusyGuard("t")
    with guard.hold("Generating..."):
        assert guard.busy
        assert guard.label == "Generating..."
        with pytest.raises(BusyError) as excinfo:
            with guard.hold("Analysing..."):
                pass
        assert "Generating..." in excinfo.value.message
    assert not guard.busy
    assert guard.label == ""


def test_slot_is_released_when_the_body_raises():
    guard = BusyGuard("t")
    with pytest.raises(RuntimeError):
        with guard.hold("Working..."):
            raise RuntimeError("boom")
    with guard.hold("Again"):
        assert guard.busy


def test_relabel_only_while_held():
    guard = BusyGuard("t")
    guard.relabel("ignored")
    assert guard.label == ""
    with guard.hold("Stage one"):
        guard.relabel("Stage two")
        assert guard.label == "Stage two"
