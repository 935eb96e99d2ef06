"""Tests for the deployment monitor poll loop."""

import pytest

from conftest import DOWN, UP, FakeClock, ScriptedProbe
from deploy_runtime.core.exceptions import MonitorNotificationError, MonitorStateError
from deploy_runtime.core.models import DeploymentOutcome, MonitorState, ProbeResult
from deploy_runtime.monitor.monitor import DeploymentMonitor, MonitorListener, OutcomeRecorder


class RecordingListener(MonitorListener):
    def __init__(self, name, log):
        self.name = name
        self.log = log

    def on_deployed(self):
        self.log.append((self.name, "deployed"))

    def on_undeployed(self):
        self.log.append((self.name, "undeployed"))


def make_monitor(probe, clock, timeout_ms=5000, **kwargs):
    return DeploymentMonitor(
        "http://host/app",
        timeout_ms,
        probe=probe,
        clock=clock,
        sleep=clock.sleep,
        **kwargs,
    )


class TestDeploymentMonitor:
    """Poll loop outcomes and notification guarantees."""

    def test_default_timeout(self):
        monitor = DeploymentMonitor("http://host/app")
        assert monitor.get_timeout() == 20000
        assert monitor.state == MonitorState.NOT_STARTED

    def test_deployed_after_exactly_one_poll(self):
        clock = FakeClock()
        probe = ScriptedProbe(UP)
        monitor = make_monitor(probe, clock)
        recorder = OutcomeRecorder()
        monitor.register_listener(recorder)

        outcome = monitor.run()

        assert outcome == DeploymentOutcome.DEPLOYED
        assert recorder.outcome == DeploymentOutcome.DEPLOYED
        assert len(probe.calls) == 1
        assert clock.sleeps == []
        assert monitor.state == MonitorState.TERMINATED

    def test_refused_connection_reports_undeployed_after_timeout(self):
        clock = FakeClock()
        monitor = make_monitor(ScriptedProbe(DOWN), clock, poll_interval_ms=500)
        notified_at = []

        class At(MonitorListener):
            def on_undeployed(self):
                notified_at.append(clock.elapsed_ms)

        monitor.register_listener(At())
        outcome = monitor.run()

        assert outcome == DeploymentOutcome.UNDEPLOYED
        assert notified_at == [clock.elapsed_ms]
        assert 5000 <= notified_at[0] <= 5500

    @pytest.mark.parametrize("timeout_ms", [125, 250, 1000, 1250, 5000])
    def test_undeployed_never_before_timeout_nor_after_one_interval(self, timeout_ms):
        clock = FakeClock()
        monitor = make_monitor(ScriptedProbe(DOWN), clock, timeout_ms=timeout_ms, poll_interval_ms=500)

        assert monitor.run() == DeploymentOutcome.UNDEPLOYED
        assert timeout_ms <= clock.elapsed_ms <= timeout_ms + 500

    def test_probe_timeout_bounded_by_remaining_budget(self):
        clock = FakeClock()
        probe = ScriptedProbe(DOWN)
        make_monitor(probe, clock, timeout_ms=1000, poll_interval_ms=250).run()

        budgets = [timeout for _, timeout in probe.calls]
        assert budgets[0] == 1000
        assert budgets == sorted(budgets, reverse=True)

    def test_content_match_waits_for_substring(self):
        clock = FakeClock()
        loading = ProbeResult(success=True, status_code=200, message="OK", body="Loading...")
        probe = ScriptedProbe(loading, loading, UP)
        monitor = make_monitor(probe, clock, contains="Welcome", poll_interval_ms=100)

        assert monitor.run() == DeploymentOutcome.DEPLOYED
        assert len(probe.calls) == 3

    def test_content_never_matching_is_undeployed(self):
        clock = FakeClock()
        monitor = make_monitor(ScriptedProbe(UP), clock, timeout_ms=1000, contains="Goodbye")
        assert monitor.run() == DeploymentOutcome.UNDEPLOYED

    def test_body_missing_fails_content_match(self):
        clock = FakeClock()
        no_body = ProbeResult(success=True, status_code=204, message="No Content")
        monitor = make_monitor(ScriptedProbe(no_body), clock, timeout_ms=500, contains="Welcome")
        assert monitor.run() == DeploymentOutcome.UNDEPLOYED

    def test_listeners_notified_once_in_registration_order(self):
        clock = FakeClock()
        probe = ScriptedProbe(DOWN, DOWN, UP)
        monitor = make_monitor(probe, clock, poll_interval_ms=100)
        log = []
        for name in ("first", "second", "third"):
            monitor.register_listener(RecordingListener(name, log))

        monitor.run()

        assert log == [
            ("first", "deployed"),
            ("second", "deployed"),
            ("third", "deployed"),
        ]

    def test_registration_after_start_is_rejected(self):
        clock = FakeClock()
        errors = []

        def probe(target, timeout_ms):
            try:
                monitor.register_listener(MonitorListener())
            except MonitorStateError as exc:
                errors.append(exc)
            return UP

        monitor = make_monitor(probe, clock)
        monitor.run()

        assert len(errors) == 1
        with pytest.raises(MonitorStateError):
            monitor.register_listener(MonitorListener())

    def test_monitor_is_single_use(self):
        clock = FakeClock()
        monitor = make_monitor(ScriptedProbe(UP), clock)
        monitor.run()
        with pytest.raises(MonitorStateError):
            monitor.run()

    def test_failing_listener_does_not_starve_the_others(self):
        clock = FakeClock()
        monitor = make_monitor(ScriptedProbe(UP), clock)
        log = []

        class Broken(MonitorListener):
            def on_deployed(self):
                raise RuntimeError("boom")

        monitor.register_listener(RecordingListener("before", log))
        monitor.register_listener(Broken())
        monitor.register_listener(RecordingListener("after", log))

        with pytest.raises(MonitorNotificationError) as exc_info:
            monitor.run()

        assert log == [("before", "deployed"), ("after", "deployed")]
        assert len(exc_info.value.errors) == 1

    def test_expect_undeployed_stops_when_target_goes_away(self):
        clock = FakeClock()
        probe = ScriptedProbe(UP, UP, DOWN)
        monitor = make_monitor(probe, clock, expect=DeploymentOutcome.UNDEPLOYED, poll_interval_ms=100)

        assert monitor.run() == DeploymentOutcome.UNDEPLOYED
        assert len(probe.calls) == 3
        assert clock.elapsed_ms == pytest.approx(200)

    def test_expect_undeployed_times_out_as_deployed(self):
        clock = FakeClock()
        monitor = make_monitor(
            ScriptedProbe(UP), clock, timeout_ms=1000, expect=DeploymentOutcome.UNDEPLOYED
        )
        assert monitor.run() == DeploymentOutcome.DEPLOYED
        assert clock.elapsed_ms >= 1000

    def test_start_runs_on_background_thread(self):
        monitor = DeploymentMonitor("http://host/app", 1000, probe=ScriptedProbe(UP))
        recorder = OutcomeRecorder()
        monitor.register_listener(recorder)

        thread = monitor.start()
        thread.join(timeout=5)

        assert not thread.is_alive()
        assert recorder.wait(timeout=1) == DeploymentOutcome.DEPLOYED

    def test_invalid_durations_rejected(self):
        with pytest.raises(ValueError):
            DeploymentMonitor("http://host/app", 0)
        with pytest.raises(ValueError):
            DeploymentMonitor("http://host/app", 1000, poll_interval_ms=0)
