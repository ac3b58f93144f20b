"""Tests for the publish gate."""

from datetime import UTC, datetime, timedelta

import pytest

from poa_scoring.ranking.records import Progress, ScoreRecord
from poa_scoring.services.scoring.engine import ScoreCandidate
from poa_scoring.services.scoring.gate import GateReason, GateState, evaluate_publish_gate

NOW = datetime(2024, 1, 1, 12, 0, tzinfo=UTC)


def _progress(h2h: int, opponents: int, sliders: int, raters: int) -> Progress:
    return Progress(
        h2h_matchups=h2h,
        unique_opponents=opponents,
        slider_ratings=sliders,
        unique_slider_users=raters,
    )


ENOUGH = _progress(5, 3, 2, 2)


def _candidate(poa: float = 50.0, confidence: float = 45.0) -> ScoreCandidate:
    return ScoreCandidate(
        nft_id="a",
        poa_value=poa,
        confidence=confidence,
        provisional=False,
        elo_component=50.0,
        slider_component=50.0,
        fire_component=0.0,
        reliability_factor=1.0,
        h2h_votes=5,
        slider_count=2,
    )


def _published(poa: float = 50.0, confidence: float = 45.0, age: float = 600.0) -> ScoreRecord:
    return ScoreRecord(
        nft_id="a",
        poa_value=poa,
        confidence=confidence,
        provisional=False,
        elo_component=50.0,
        slider_component=50.0,
        fire_component=0.0,
        reliability_factor=1.0,
        updated_at=NOW - timedelta(seconds=age),
    )


class TestMinimums:
    """Tests for the data requirements."""

    def test_no_data_no_score(self, config):
        """Test an NFT without votes has no score."""
        decision = evaluate_publish_gate(_candidate(), Progress(), None, NOW, config)

        assert not decision.publish
        assert decision.state is GateState.NO_SCORE
        assert decision.reason is GateReason.NO_DATA

    def test_four_matchups_never_publish(self, config):
        """Test one matchup short of the minimum blocks publication."""
        progress = _progress(4, 3, 2, 2)
        decision = evaluate_publish_gate(_candidate(), progress, None, NOW, config)

        assert not decision.publish
        assert decision.state is GateState.AWAITING_DATA
        assert decision.reason is GateReason.MINIMUMS_UNMET
        assert decision.remaining["h2h_matchups"] == 1

    @pytest.mark.parametrize(
        "progress",
        [
            _progress(9, 2, 2, 2),
            _progress(9, 3, 1, 1),
            _progress(9, 3, 5, 1),
        ],
    )
    def test_each_minimum_required(self, config, progress):
        """Test every requirement must be met independently."""
        decision = evaluate_publish_gate(_candidate(), progress, None, NOW, config)
        assert not decision.publish
        assert decision.state is GateState.AWAITING_DATA

    def test_remaining_counts(self, config):
        """Test remaining lists exactly what is missing."""
        progress = _progress(2, 1, 1, 1)
        decision = evaluate_publish_gate(_candidate(), progress, None, NOW, config)
        assert decision.remaining == {
            "h2h_matchups": 3,
            "unique_opponents": 2,
            "slider_ratings": 1,
            "unique_slider_users": 1,
        }

    def test_published_score_kept_when_minimums_lapse(self, config):
        """Test a published score is held, not removed, if data falls below minimums."""
        progress = _progress(5, 3, 1, 1)
        decision = evaluate_publish_gate(_candidate(80.0), progress, _published(), NOW, config)

        assert not decision.publish
        assert decision.state is GateState.PUBLISHED
        assert decision.reason is GateReason.MINIMUMS_UNMET


class TestPublishing:
    """Tests for publish decisions once minimums are met."""

    def test_first_publish(self, config):
        """Test the first score is published as soon as minimums are met."""
        decision = evaluate_publish_gate(_candidate(), ENOUGH, None, NOW, config)

        assert decision.publish
        assert decision.state is GateState.PUBLISHED
        assert decision.reason is GateReason.FIRST_PUBLISH
        assert not any(decision.remaining.values())

    def test_grace_period_blocks(self, config):
        """Test a large change inside the grace period is held back."""
        published = _published(age=120.0)
        decision = evaluate_publish_gate(_candidate(90.0), ENOUGH, published, NOW, config)

        assert not decision.publish
        assert decision.reason is GateReason.GRACE_PERIOD

    def test_grace_boundary_allows(self, config):
        """Test exactly the grace period since the last publish is enough."""
        published = _published(age=300.0)
        decision = evaluate_publish_gate(_candidate(90.0), ENOUGH, published, NOW, config)
        assert decision.publish

    @pytest.mark.parametrize(
        ("new_poa", "publish"),
        [(50.4, False), (49.6, False), (50.5, True), (49.5, True), (62.0, True)],
    )
    def test_poa_change_threshold(self, config, new_poa, publish):
        """Test changes below the threshold are ignored and at or above it published."""
        decision = evaluate_publish_gate(_candidate(new_poa), ENOUGH, _published(), NOW, config)

        assert decision.publish is publish
        expected = GateReason.POA_CHANGED if publish else GateReason.NO_SIGNIFICANT_CHANGE
        assert decision.reason is expected

    def test_tier_change_publishes(self, config):
        """Test crossing a confidence tier publishes even with a small POA change."""
        published = _published(confidence=39.9)
        decision = evaluate_publish_gate(_candidate(50.1, 40.0), ENOUGH, published, NOW, config)

        assert decision.publish
        assert decision.reason is GateReason.TIER_CHANGED

    def test_same_tier_small_change_held(self, config):
        """Test moving within a tier with a small change is not published."""
        published = _published(confidence=41.0)
        decision = evaluate_publish_gate(_candidate(50.2, 49.0), ENOUGH, published, NOW, config)

        assert not decision.publish
        assert decision.state is GateState.PUBLISHED

    def test_small_change_inside_grace_is_not_deferred(self, config):
        """Test an insignificant change inside the grace period is simply dropped."""
        published = _published(age=10.0)
        decision = evaluate_publish_gate(_candidate(50.1), ENOUGH, published, NOW, config)

        assert not decision.publish
        assert decision.reason is GateReason.NO_SIGNIFICANT_CHANGE
