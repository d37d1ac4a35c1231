import pytest

from aiosyncroom.clock import PlaybackClock, project_position


def test_paused_position_does_not_advance() -> None:
    assert project_position(42.0, False, 100.0, 500.0) == 42.0


def test_playing_position_advances_with_wall_clock() -> None:
    assert project_position(10.0, True, 100.0, 105.5) == pytest.approx(15.5)


def test_clock_stepping_backwards_never_rewinds() -> None:
    assert project_position(10.0, True, 100.0, 90.0) == 10.0


def test_start_plays_from_the_beginning() -> None:
    clock = PlaybackClock(position=73.0, is_playing=False, last_update=1.0)

    clock.start(200.0)

    assert clock.is_playing is True
    assert clock.project(200.0) == 0.0
    assert clock.project(203.0) == pytest.approx(3.0)


def test_seek_keeps_play_state() -> None:
    clock = PlaybackClock()
    clock.set_play_state(True, 5.0, 100.0)

    clock.seek(60.0, 110.0)

    assert clock.is_playing is True
    assert clock.project(112.0) == pytest.approx(62.0)


def test_pause_freezes_reported_position() -> None:
    clock = PlaybackClock()
    clock.start(100.0)

    clock.set_play_state(False, 12.5, 120.0)

    assert clock.project(1_000.0) == 12.5
