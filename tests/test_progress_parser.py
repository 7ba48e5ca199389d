"""Unit tests for progress signal parsing and the monotonic tracker."""

from __future__ import annotations

import pytest

from app.services.setup.models import ProvisioningPhase, phase_label
from app.services.setup.progress_poller import (
    PhaseSignal,
    ProgressTracker,
    UnrecognizedSignal,
    parse_progress_signal,
)

# ---------------------------------------------------------------------------
# parse_progress_signal
# ---------------------------------------------------------------------------


class TestParseProgressSignal:
    def test_running_migrations_with_percentage_is_interpolated(self):
        signal = parse_progress_signal("Running migrations 40%")
        assert isinstance(signal, PhaseSignal)
        assert signal.phase is ProvisioningPhase.RUNNING_MIGRATIONS
        assert signal.overall_percent == 39
        assert signal.sub_percent == 40.0

    def test_running_migrations_without_percentage_uses_checkpoint(self):
        signal = parse_progress_signal("Running migrations...")
        assert signal.phase is ProvisioningPhase.RUNNING_MIGRATIONS
        assert signal.overall_percent == 60
        assert signal.sub_percent is None

    def test_loading_data_with_percentage_stays_in_range(self):
        signal = parse_progress_signal("Loading catalog data 50%")
        assert signal.phase is ProvisioningPhase.LOADING_DEFAULT_DATA
        assert 85 <= signal.overall_percent <= 95
        assert signal.overall_percent == 90

    def test_loading_data_without_percentage_uses_checkpoint(self):
        signal = parse_progress_signal("Loading default data")
        assert signal.phase is ProvisioningPhase.LOADING_DEFAULT_DATA
        assert signal.overall_percent == 85

    @pytest.mark.parametrize(
        ("raw", "phase"),
        [
            ("Creating workspace schema", ProvisioningPhase.CREATING_SCHEMA),
            ("Creating schema...", ProvisioningPhase.CREATING_SCHEMA),
            ("Initializing setup", ProvisioningPhase.INITIALIZING),
        ],
    )
    def test_early_phases_use_fixed_checkpoint(self, raw, phase):
        signal = parse_progress_signal(raw)
        assert signal.phase is phase
        assert signal.overall_percent == 25

    def test_completed_token(self):
        signal = parse_progress_signal("COMPLETED")
        assert signal.phase is ProvisioningPhase.COMPLETED
        assert signal.overall_percent == 100

    def test_failed_prefix_extracts_reason(self):
        signal = parse_progress_signal("FAILED: disk quota exceeded")
        assert signal.phase is ProvisioningPhase.FAILED
        assert signal.failure_reason == "disk quota exceeded"
        assert signal.overall_percent is None

    def test_embedded_percentage_is_clamped(self):
        signal = parse_progress_signal("Running migrations 250%")
        assert signal.sub_percent == 100.0
        assert signal.overall_percent == 60

    @pytest.mark.parametrize("raw", ["", None, "Warming caches", "completed soon"])
    def test_unknown_text_is_unrecognized(self, raw):
        assert isinstance(parse_progress_signal(raw), UnrecognizedSignal)


# ---------------------------------------------------------------------------
# ProgressTracker
# ---------------------------------------------------------------------------


class TestProgressTracker:
    def test_starts_at_initializing_zero(self):
        tracker = ProgressTracker()
        assert tracker.current.phase is ProvisioningPhase.INITIALIZING
        assert tracker.current.overall_percent == 0

    def test_percent_never_decreases_across_unrecognized_signal(self):
        tracker = ProgressTracker()
        seen = [
            tracker.apply(raw).overall_percent
            for raw in [
                "Creating workspace schema",
                "Running migrations 40%",
                "???",
                "Running migrations 80%",
                "garbage",
                "Loading catalog data 10%",
            ]
        ]
        assert seen == sorted(seen)
        assert seen == [25, 39, 39, 53, 53, 86]

    def test_unrecognized_signal_keeps_phase(self):
        tracker = ProgressTracker()
        tracker.apply("Running migrations 40%")
        progress = tracker.apply("something odd")
        assert progress.phase is ProvisioningPhase.RUNNING_MIGRATIONS
        assert progress.overall_percent == 39
        assert progress.raw_message == "something odd"

    def test_lower_interpolated_value_does_not_move_backwards(self):
        tracker = ProgressTracker()
        tracker.apply("Running migrations")
        progress = tracker.apply("Running migrations 10%")
        assert progress.overall_percent == 60

    def test_earlier_phase_does_not_regress(self):
        tracker = ProgressTracker()
        tracker.apply("Loading catalog data 50%")
        progress = tracker.apply("Creating workspace schema")
        assert progress.phase is ProvisioningPhase.LOADING_DEFAULT_DATA
        assert progress.overall_percent == 90

    def test_failure_keeps_percent_and_reason(self):
        tracker = ProgressTracker()
        tracker.apply("Running migrations 40%")
        progress = tracker.apply("FAILED: disk quota exceeded")
        assert progress.phase is ProvisioningPhase.FAILED
        assert progress.failure_reason == "disk quota exceeded"
        assert progress.overall_percent == 39
        assert progress.is_terminal

    def test_terminal_state_is_sticky(self):
        tracker = ProgressTracker()
        tracker.apply("COMPLETED")
        progress = tracker.apply("Running migrations 10%")
        assert progress.phase is ProvisioningPhase.COMPLETED
        assert progress.overall_percent == 100


def test_every_phase_has_a_label():
    for phase in ProvisioningPhase:
        assert phase_label(phase)
