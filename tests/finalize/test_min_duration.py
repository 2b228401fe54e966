import pytest

pytest.importorskip("moviepy")
from reel_planner.errors import DurationShortfallError
from reel_planner.finalize import ensure_min_duration


class FakeFile:
    def __init__(self, duration):
        self.duration = duration
        self.pads = []

    def probe(self, path):
        return self.duration

    def pad(self, path, delta):
        self.pads.append(delta)
        self.duration += delta


def test_within_tolerance_is_left_alone():
    f = FakeFile(9.95)
    result = ensure_min_duration("out.mp4", 10.0, probe=f.probe, pad=f.pad)
    assert not result.padded
    assert f.pads == []
    assert result.before == result.after == 9.95


def test_small_shortfall_is_padded(caplog):
    f = FakeFile(9.0)
    result = ensure_min_duration("out.mp4", 10.0, probe=f.probe, pad=f.pad)
    assert result.padded
    assert f.pads == [pytest.approx(1.0)]
    assert result.delta == pytest.approx(1.0)
    assert result.after == pytest.approx(10.0)
    assert "short by 1.000s" in caplog.text


def test_large_shortfall_raises():
    f = FakeFile(5.0)
    with pytest.raises(DurationShortfallError, match="short by 5.000s"):
        ensure_min_duration("out.mp4", 10.0, probe=f.probe, pad=f.pad)
    assert f.pads == []


def test_longer_file_is_fine():
    f = FakeFile(12.0)
    assert not ensure_min_duration("out.mp4", 10.0, probe=f.probe, pad=f.pad).padded
