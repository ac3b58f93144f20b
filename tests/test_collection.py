"""Tests for the Collection Aesthetic Index."""

import math

import pydantic
import pytest

from poa_scoring.core.config import CollectionConfig
from poa_scoring.core.errors import ComputationError, NotFoundError
from poa_scoring.ranking.collection import (
    CollectionMember,
    cai_label,
    calculate_aesthetic_stats,
    calculate_cohesion_penalty,
    calculate_collection_confidence,
    calculate_coverage,
    compute_collection_index,
)
from poa_scoring.services.voting import StatisticsRebuilder


def _members(*scores: float | None, votes: int = 10) -> list[CollectionMember]:
    return [
        CollectionMember(nft_id=f"nft-{i}", poa_value=score, total_votes=votes)
        for i, score in enumerate(scores)
    ]


class TestAestheticStats:
    """Tests for mean, spread and trimming."""

    def test_empty(self):
        """Test no scores give all-zero statistics."""
        stats = calculate_aesthetic_stats([])
        assert stats.count == 0
        assert stats.trimmed_mean == 0.0

    def test_population_std(self):
        """Test the spread divides by n, not n - 1."""
        stats = calculate_aesthetic_stats([60.0, 70.0, 80.0])

        assert stats.mean == pytest.approx(70.0)
        assert stats.std == pytest.approx(math.sqrt(200 / 3))
        assert stats.standard_error == pytest.approx(stats.std / math.sqrt(3))

    def test_no_trimming_below_minimum(self):
        """Test fewer than ten scores are never trimmed."""
        stats = calculate_aesthetic_stats([0.0, 50.0, 50.0, 100.0])

        assert stats.trimmed_count == 4
        assert stats.trimmed_mean == stats.mean
        assert stats.trimmed_std == stats.std

    def test_ten_scores_trim_nothing(self):
        """Test 5% of ten rounds down to no trimmed scores."""
        stats = calculate_aesthetic_stats([0.0] + [50.0] * 8 + [100.0])
        assert stats.trimmed_count == 10

    def test_outliers_trimmed(self):
        """Test one score is dropped from each end of twenty."""
        stats = calculate_aesthetic_stats([0.0] + [50.0] * 18 + [100.0])

        assert stats.count == 20
        assert stats.trimmed_count == 18
        assert stats.trimmed_mean == pytest.approx(50.0)
        assert stats.trimmed_std == pytest.approx(0.0)
        assert stats.std > 0


class TestCohesionPenalty:
    """Tests for the spread penalty."""

    def test_no_spread_no_penalty(self):
        """Test identical scores cost nothing."""
        assert calculate_cohesion_penalty(0.0) == 0.0

    def test_linear_up_to_cap(self):
        """Test the penalty grows linearly and caps at 30%."""
        assert calculate_cohesion_penalty(7.5) == pytest.approx(0.15)
        assert calculate_cohesion_penalty(15.0) == pytest.approx(0.30)
        assert calculate_cohesion_penalty(40.0) == pytest.approx(0.30)


class TestCoverage:
    """Tests for completeness and vote depth."""

    def test_nothing_scored(self):
        """Test a collection without scored NFTs has zero coverage."""
        coverage = calculate_coverage(5, 0, 100)
        assert coverage.coverage_score == 0.0
        assert coverage.depth_factor == 0.0

    def test_partial_coverage(self):
        """Test three of four scored with about eleven votes each."""
        coverage = calculate_coverage(4, 3, 32)

        assert coverage.coverage_factor == pytest.approx(0.75)
        assert coverage.avg_votes_per_scored == pytest.approx(32 / 3)
        assert coverage.depth_factor == pytest.approx(32 / 60)
        assert coverage.coverage_score == pytest.approx(66.33)

    def test_depth_capped(self):
        """Test votes beyond the target do not raise the depth factor past 1."""
        coverage = calculate_coverage(2, 2, 1000)
        assert coverage.depth_factor == 1.0
        assert coverage.coverage_score == pytest.approx(100.0)


class TestCollectionConfidence:
    """Tests for collection confidence and the provisional flag."""

    def test_full_data_is_certain(self):
        """Test full coverage, full depth and no spread give confidence 100."""
        coverage = calculate_coverage(10, 10, 400)
        confidence, uncertainty, provisional = calculate_collection_confidence(
            coverage, 0.0, CollectionConfig()
        )

        assert confidence == 100
        assert uncertainty == 1.0
        assert not provisional

    def test_low_coverage_is_provisional(self):
        """Test fewer than 20% scored NFTs is provisional regardless of confidence."""
        coverage = calculate_coverage(10, 1, 400)
        config = CollectionConfig(provisional_confidence=0.0)

        _, _, provisional = calculate_collection_confidence(coverage, 0.0, config)

        assert provisional

    def test_large_error_removes_uncertainty_part(self):
        """Test a standard error past the scale contributes nothing."""
        coverage = calculate_coverage(10, 10, 400)
        confidence, uncertainty, _ = calculate_collection_confidence(
            coverage, 25.0, CollectionConfig()
        )

        assert uncertainty == 0.0
        assert confidence == 80


class TestCaiLabel:
    """Tests for named score ranges."""

    @pytest.mark.parametrize(
        ("score", "label"),
        [
            (100.0, "exceptional"),
            (80.0, "exceptional"),
            (79.99, "excellent"),
            (65.0, "good"),
            (40.0, "average"),
            (25.0, "below_average"),
            (0.0, "poor"),
        ],
    )
    def test_ranges(self, score, label):
        """Test each range boundary maps to its label."""
        assert cai_label(score) == label


class TestComputeCollectionIndex:
    """Tests for the full index."""

    def test_known_collection(self):
        """Test three scored NFTs out of four against hand-computed values."""
        members = _members(60.0, 70.0, 80.0, votes=10) + [
            CollectionMember(nft_id="unscored", poa_value=None, total_votes=2)
        ]

        index = compute_collection_index("genesis", members, CollectionConfig())

        penalty = 0.30 * math.sqrt(200 / 3) / 15
        effective = 70.0 * (1 - penalty)
        assert index.cohesion_penalty == pytest.approx(penalty, abs=1e-4)
        assert index.effective_mean == pytest.approx(effective, abs=0.01)
        assert index.cai_score == pytest.approx(0.8 * effective + 0.2 * 66.33, abs=0.01)
        assert index.cai_score == pytest.approx(60.12, abs=0.01)
        assert index.label == "good"
        assert index.confidence == 64
        assert index.provisional
        assert index.scored_count == 3
        assert index.nft_count == 4
        assert index.total_votes == 32

    def test_uniform_collection_has_no_penalty(self):
        """Test identical member scores are not penalized."""
        index = compute_collection_index(
            "flat", _members(55.0, 55.0, 55.0, 55.0, votes=40), CollectionConfig()
        )

        assert index.cohesion_penalty == 0.0
        assert index.cai_score == pytest.approx(0.8 * 55.0 + 0.2 * 100.0)
        assert not index.provisional
        assert "perfect consistency" in index.explanation

    def test_spread_lowers_score(self):
        """Test a spread-out collection scores below a cohesive one with the same mean."""
        config = CollectionConfig()
        cohesive = compute_collection_index("a", _members(50.0, 50.0, 50.0, 50.0), config)
        spread = compute_collection_index("b", _members(20.0, 80.0, 20.0, 80.0), config)

        assert spread.stats.trimmed_mean == cohesive.stats.trimmed_mean
        assert spread.cai_score < cohesive.cai_score
        assert "30% cohesion penalty" in spread.explanation

    def test_explanation_mentions_provisional(self):
        """Test a provisional index says so."""
        members = _members(70.0, None, None, None, None, None, votes=1)
        index = compute_collection_index("thin", members, CollectionConfig())

        assert index.provisional
        assert index.explanation.endswith("(provisional).")

    def test_single_nft_rejected(self):
        """Test a collection below the minimum size is not indexed."""
        with pytest.raises(ComputationError, match="between 2 and"):
            compute_collection_index("tiny", _members(50.0), CollectionConfig())

    def test_unscored_collection_rejected(self):
        """Test at least one published score is required."""
        with pytest.raises(ComputationError, match="published score"):
            compute_collection_index("new", _members(None, None), CollectionConfig())

    def test_out_of_range_score_rejected(self):
        """Test a member score outside 0-100 is an error."""
        with pytest.raises(ComputationError, match="nft-1"):
            compute_collection_index("bad", _members(50.0, 120.0), CollectionConfig())


class TestCollectionConfig:
    """Tests for collection settings validation."""

    def test_defaults_valid(self):
        """Test the defaults pass their own validation."""
        config = CollectionConfig()
        assert config.mean_weight + config.coverage_weight == pytest.approx(1.0)

    def test_weights_must_sum_to_one(self):
        """Test unbalanced score weights are rejected."""
        with pytest.raises(pydantic.ValidationError, match="mean_weight"):
            CollectionConfig(mean_weight=0.5)

    def test_size_bounds_ordered(self):
        """Test the maximum size cannot be below the minimum."""
        with pytest.raises(pydantic.ValidationError, match="max_collection_size"):
            CollectionConfig(min_collection_size=5, max_collection_size=3)


class TestCollectionIndexService:
    """Tests for indexing collections from stored scores."""

    async def _assign(self, store, collection: str) -> None:
        for nft_id in ["hero", "opp-1", "opp-2", "opp-3"]:
            await store.stats.register_nft(nft_id, collection)

    async def test_index_from_published_scores(self, service, store, seed_publishable):
        """Test only published scores count, and every member's votes add depth."""
        await seed_publishable()
        await self._assign(store, "genesis")
        hero = await store.scores.get_published("hero")

        index = await service.collection_index("genesis")

        assert index.nft_count == 4
        assert index.scored_count == 1
        assert index.total_votes == 12
        assert index.stats.mean == pytest.approx(hero.poa_value)
        coverage = (0.6 * 0.25 + 0.4 * 12 / 20) * 100
        assert index.coverage.coverage_score == pytest.approx(coverage, abs=0.01)
        assert index.cai_score == pytest.approx(
            0.8 * hero.poa_value + 0.2 * coverage, abs=0.01
        )
        assert index.provisional

    async def test_register_assigns_collection_once(self, store):
        """Test a collection is set on an unassigned NFT but never overwritten."""
        await store.stats.register_nft("a")
        await store.stats.register_nft("a", "first")
        await store.stats.register_nft("a", "second")
        await store.stats.register_nft("b", "first")

        members = await store.scores.collection_members("first")

        assert [m.nft_id for m in members] == ["a", "b"]
        assert await store.scores.collection_members("second") == []
        assert await store.stats.list_collections() == ["first"]

    async def test_deactivated_nfts_excluded(self, store):
        """Test deactivated NFTs drop out of their collection."""
        for nft_id in ["a", "b", "c"]:
            await store.stats.register_nft(nft_id, "genesis")
        await store.stats.deactivate_nft("c")

        members = await store.scores.collection_members("genesis")

        assert [m.nft_id for m in members] == ["a", "b"]
        assert all(m.poa_value is None for m in members)

    async def test_unknown_collection(self, service):
        """Test asking for a collection without NFTs fails."""
        with pytest.raises(NotFoundError, match="collection"):
            await service.collection_index("ghost")

    async def test_unscored_collection(self, service, store):
        """Test a collection without published scores cannot be indexed yet."""
        await store.stats.register_nft("a", "genesis")
        await store.stats.register_nft("b", "genesis")

        with pytest.raises(ComputationError):
            await service.collection_index("genesis")

    async def test_rebuild_keeps_collection(self, config, store, seed_publishable):
        """Test rebuilding statistics leaves collection membership alone."""
        await seed_publishable()
        await self._assign(store, "genesis")

        await StatisticsRebuilder(config, store).rebuild(mark_dirty=False)

        members = await store.scores.collection_members("genesis")
        assert len(members) == 4
