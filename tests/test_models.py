"""Tests for domain models: status transitions, plans and fleet outcomes."""

import pytest

from fleetgen.models import (
    DeploymentOutcome,
    DeploymentPlan,
    FleetStatus,
    Generation,
    GenerationStatus,
    HostOutcome,
    HostResult,
    RollbackPolicy,
)

from conftest import content_hash


def make_generation(status):
    return Generation(
        host_id="web-1",
        sequence=1,
        content_hash=content_hash(1),
        artifact_path="/out",
        timestamp="2026-01-01T00:00:00+00:00",
        status=status,
    )


class TestGenerationTransitions:
    @pytest.mark.parametrize(
        "start, end",
        [
            (GenerationStatus.PENDING, GenerationStatus.ACTIVE),
            (GenerationStatus.PENDING, GenerationStatus.ROLLED_BACK),
            (GenerationStatus.ACTIVE, GenerationStatus.SUPERSEDED),
            (GenerationStatus.ACTIVE, GenerationStatus.ROLLED_BACK),
            (GenerationStatus.SUPERSEDED, GenerationStatus.ROLLED_BACK),
        ],
    )
    def test_allowed(self, start, end):
        assert make_generation(start).transition(end).status == end

    @pytest.mark.parametrize(
        "start, end",
        [
            (GenerationStatus.SUPERSEDED, GenerationStatus.ACTIVE),
            (GenerationStatus.ROLLED_BACK, GenerationStatus.ACTIVE),
            (GenerationStatus.ROLLED_BACK, GenerationStatus.SUPERSEDED),
            (GenerationStatus.PENDING, GenerationStatus.SUPERSEDED),
        ],
    )
    def test_refused(self, start, end):
        with pytest.raises(ValueError):
            make_generation(start).transition(end)

    def test_transition_keeps_reason_unless_given(self):
        rolled = make_generation(GenerationStatus.ACTIVE).transition(
            GenerationStatus.ROLLED_BACK, reason="rolled back to #1"
        )
        assert rolled.reason == "rolled back to #1"

    def test_dict_round_trip(self):
        generation = make_generation(GenerationStatus.SUPERSEDED)
        assert Generation.from_dict("web-1", generation.to_dict()) == generation


class TestDeploymentPlan:
    def test_policy_aliases(self):
        assert RollbackPolicy.from_option("abort") == RollbackPolicy.ABORT
        assert RollbackPolicy.from_option("best-effort-continue") == RollbackPolicy.CONTINUE

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"hosts": ()},
            {"hosts": ("a",), "concurrency": 0},
            {"hosts": ("a", "a")},
        ],
    )
    def test_invalid_plans(self, kwargs):
        with pytest.raises(ValueError):
            DeploymentPlan(**kwargs)


class TestDeploymentOutcome:
    def outcome(self, *outcomes, **kwargs):
        result = DeploymentOutcome(**kwargs)
        for index, outcome in enumerate(outcomes):
            result.add(HostResult(f"host-{index}", outcome))
        return result

    def test_success(self):
        outcome = self.outcome(HostOutcome.SUCCESS, HostOutcome.ROLLED_BACK)
        assert outcome.status == FleetStatus.SUCCESS
        assert outcome.exit_code == 0

    def test_unverified_is_partial_failure(self):
        outcome = self.outcome(HostOutcome.SUCCESS, HostOutcome.UNVERIFIED)
        assert outcome.status == FleetStatus.PARTIAL_FAILURE
        assert outcome.exit_code == 1

    def test_aborted(self):
        outcome = self.outcome(
            HostOutcome.BUILD_FAILED, HostOutcome.SKIPPED, aborted=True
        )
        assert outcome.status == FleetStatus.ABORTED
        assert outcome.exit_code == 2

    def test_cancelled(self):
        assert self.outcome(HostOutcome.SUCCESS, cancelled=True).exit_code == 2

    def test_unverified_does_not_trip_abort(self):
        assert not HostOutcome.UNVERIFIED.is_failure
        assert HostOutcome.ACTIVATION_FAILED.is_failure

    def test_to_dict(self):
        data = self.outcome(HostOutcome.SUCCESS).to_dict()
        assert data["status"] == "success"
        assert data["hosts"][0]["outcome"] == "success"
