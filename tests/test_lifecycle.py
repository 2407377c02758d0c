"""Tests for the per-component lifecycle state machine."""

import pytest

from conftest import create, destroy, kill
from lifecycle_report.lifecycle import ComponentStat
from lifecycle_report.models import LifecycleEvent

COMPONENT = "app.foo/.MainService"


def run(events, end_ts=10_000):
    stat = ComponentStat(component=COMPONENT)
    for event in events:
        stat.add_event(event)
    stat.finish(end_ts)
    return stat


class TestWellFormedSequences:
    """Alternating CREATE/DESTROY input."""

    def test_total_and_max_time(self):
        stat = run(
            [create(100), destroy(400), create(500), destroy(1500), create(2000), destroy(2100)]
        )
        assert stat.total_time == 300 + 1000 + 100
        assert stat.max_time == 1000
        assert stat.count == 3
        assert stat.errors == 0

    def test_average_time(self):
        stat = run([create(0), destroy(100), create(200), destroy(500)])
        assert stat.avg_time == 200

    def test_trailing_create_closed_at_trace_end(self):
        stat = run([create(100), destroy(200), create(900)], end_ts=1000)
        assert stat.total_time == 100 + 100
        assert stat.max_time == 100
        assert stat.errors == 0
        assert stat.state == "IDLE"

    def test_single_unterminated_create(self):
        stat = run([create(250)], end_ts=1000)
        assert stat.total_time == 750
        assert stat.max_time == 750
        assert stat.count == 1

    def test_no_events_has_no_averages(self):
        stat = run([])
        assert stat.count == 0
        assert stat.avg_time is None
        assert stat.avg_restart_time is None
        assert stat.avg_bg_kill_restart_time is None
        assert stat.min_restart_time is None


class TestRestartClassification:
    def test_restart_after_plain_destroy(self):
        stat = run([create(10), destroy(20), create(50)])
        assert stat.restart_count == 1
        assert stat.total_restart_time == 30
        assert stat.min_restart_time == 30
        assert stat.bg_kill_restart_count == 0

    def test_restart_after_low_memory_kill(self):
        stat = run([create(10), kill(20), create(50)])
        assert stat.bg_kill_restart_count == 1
        assert stat.total_bg_kill_restart_time == 30
        assert stat.min_bg_kill_restart_time == 30
        assert stat.restart_count == 0
        assert stat.min_restart_time is None

    def test_mixed_restarts_track_minimum_and_average(self):
        stat = run(
            [
                create(0),
                destroy(100),
                create(400),  # restart after 300
                kill(500),
                create(520),  # restart after kill after 20
                destroy(600),
                create(700),  # restart after 100
                kill(800),
                create(900),  # restart after kill after 100
            ]
        )
        assert stat.restart_count == 2
        assert stat.min_restart_time == 100
        assert stat.avg_restart_time == 200
        assert stat.bg_kill_restart_count == 2
        assert stat.min_bg_kill_restart_time == 20
        assert stat.avg_bg_kill_restart_time == 60
        assert stat.count == 5
        assert stat.count >= stat.restart_count + stat.bg_kill_restart_count

    def test_first_create_is_not_a_restart(self):
        stat = run([create(10)])
        assert stat.restart_count == 0
        assert stat.bg_kill_restart_count == 0

    def test_kill_flag_tracked(self):
        stat = ComponentStat(component=COMPONENT)
        stat.add_event(create(0))
        stat.add_event(kill(10))
        assert stat.last_destroy_was_kill is True
        stat.add_event(create(20))
        stat.add_event(destroy(30))
        assert stat.last_destroy_was_kill is False


class TestAnomalies:
    """Inconsistent sequences are counted and recovered from."""

    def test_create_while_running(self):
        stat = run([create(100), create(300), destroy(400)])
        assert stat.errors == 1
        assert stat.total_time == 200 + 100
        assert stat.max_time == 200
        assert stat.count == 2
        assert stat.restart_count == 0
        assert stat.flagged

    def test_create_while_running_at_same_timestamp(self):
        stat = run([create(100), create(100)], end_ts=100)
        assert stat.errors == 1
        assert stat.total_time == 0
        assert stat.max_time >= 0

    def test_destroy_without_create(self):
        stat = run([destroy(100)])
        assert stat.errors == 1
        assert stat.total_time == 0
        assert stat.max_time == 0
        assert stat.count == 0

    def test_orphan_destroy_still_anchors_restart(self):
        stat = run([destroy(100), create(150), destroy(300)])
        assert stat.errors == 1
        assert stat.restart_count == 1
        assert stat.total_restart_time == 50
        assert stat.total_time == 150

    def test_orphan_kill_anchors_restart_after_kill(self):
        stat = run([kill(100), create(130)], end_ts=200)
        assert stat.errors == 1
        assert stat.bg_kill_restart_count == 1
        assert stat.total_bg_kill_restart_time == 30

    def test_double_destroy(self):
        stat = run([create(0), destroy(10), destroy(20), create(50)])
        assert stat.errors == 1
        assert stat.total_time == 10 + (10_000 - 50)
        assert stat.restart_count == 1
        assert stat.total_restart_time == 30

    def test_finish_does_not_count_an_error(self):
        stat = run([create(0)], end_ts=50)
        assert stat.errors == 0

    def test_window_ending_before_open_interval(self):
        stat = run([create(500)], end_ts=400)
        assert stat.errors == 1
        assert stat.total_time == 0
        assert stat.max_time == 0
        assert stat.state == "IDLE"


class TestStateMachine:
    def test_states(self):
        stat = ComponentStat(component=COMPONENT)
        assert stat.state == "IDLE"
        stat.add_event(create(5))
        assert stat.state == "RUNNING"
        assert stat.pending_create_ts == 5
        stat.add_event(destroy(10))
        assert stat.state == "IDLE"
        assert stat.pending_create_ts is None

    def test_out_of_order_event_rejected(self):
        stat = ComponentStat(component=COMPONENT)
        stat.add_event(create(100))
        with pytest.raises(ValueError, match="Out-of-order"):
            stat.add_event(destroy(50))

    def test_equal_timestamps_accepted(self):
        stat = ComponentStat(component=COMPONENT)
        stat.add_event(create(100))
        stat.add_event(destroy(100))
        assert stat.errors == 0

    def test_event_for_other_component_rejected(self):
        stat = ComponentStat(component=COMPONENT)
        with pytest.raises(ValueError):
            stat.add_event(create(0, component="app.bar/.Other"))

    def test_closing_without_open_interval_raises(self):
        stat = ComponentStat(component=COMPONENT)
        with pytest.raises(RuntimeError, match="no open interval"):
            stat._close_interval(10)

    def test_finish_only_once(self):
        stat = ComponentStat(component=COMPONENT)
        stat.finish(100)
        assert stat.finished
        with pytest.raises(RuntimeError):
            stat.finish(100)

    def test_no_events_after_finish(self):
        stat = ComponentStat(component=COMPONENT)
        stat.finish(100)
        with pytest.raises(RuntimeError):
            stat.add_event(create(200))

    def test_ref_parsed_once(self):
        stat = ComponentStat(component=COMPONENT)
        assert stat.ref.package == "app.foo"
        assert stat.ref is stat.ref


class TestLifecycleEvent:
    def test_unknown_kind_rejected(self):
        with pytest.raises(ValueError):
            LifecycleEvent(timestamp=0, kind="RESTART", component=COMPONENT)

    def test_empty_component_rejected(self):
        with pytest.raises(ValueError):
            LifecycleEvent(timestamp=0, kind="CREATE", component="")

    def test_events_are_immutable(self):
        event = create(0)
        with pytest.raises(ValueError):
            event.timestamp = 5
