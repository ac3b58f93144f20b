"""Tests for replaying the vote log and rebuilding statistics."""

from dataclasses import replace
from datetime import UTC, datetime

import pytest

from poa_scoring.models import VoteEventRow
from poa_scoring.services.voting import StatisticsRebuilder, VoteEvent, replay_events


class TestReplayEvents:
    """Tests for the pure log fold."""

    async def test_replay_matches_live_statistics(self, store, config, seed_publishable):
        """Test folding the log reproduces what incremental processing stored."""
        await seed_publishable()
        rows = await store.events.all_events()

        result = replay_events(rows, config)

        assert result.applied == 7
        assert result.skipped == 0
        for nft_id in ["hero", "opp-1", "opp-2", "opp-3"]:
            live = await store.stats.get_nft_stats(nft_id)
            rebuilt = result.nfts[nft_id]
            assert rebuilt.elo_mean == pytest.approx(live.elo_mean)
            assert rebuilt.elo_uncertainty == pytest.approx(live.elo_uncertainty)
            assert rebuilt.total_h2h_votes == live.total_h2h_votes
            assert rebuilt.sliders.count == live.sliders.count
            assert rebuilt.sliders.mean == pytest.approx(live.sliders.mean)
        live_user = await store.stats.get_user_stats("rater-2")
        assert result.users["rater-2"].reliability_score == pytest.approx(
            live_user.reliability_score
        )

    async def test_retraction_replayed_as_compensation(self, store, config, processor, slider):
        """Test a retracted rating is folded in and then reversed where it was retracted."""
        await store.stats.register_nft("a")
        kept = slider("u1", "a", 60)
        dropped = slider("u2", "a", 90)
        await processor.process(kept)
        await processor.process(dropped)
        await processor.process(
            VoteEvent(voter_id="u2", nft_a_id="a", retracts_event_id=dropped.event_id)
        )

        rows = await store.events.all_events()
        result = replay_events(rows, config, nft_ids=["a"], user_ids=["u1", "u2"])

        assert result.applied == 3
        assert result.skipped == 0
        assert result.nfts["a"].slider_count == 1
        assert result.users["u2"].slider_count == 0

    async def test_replay_matches_live_after_retraction(
        self, store, config, processor, slider
    ):
        """Test ratings cast after a retracted one keep their live normalization."""
        for nft_id in ["a", "b", "c"]:
            await store.stats.register_nft(nft_id)
        first = slider("u1", "a", 95)
        await processor.process(first)
        await processor.process(slider("u1", "b", 40))
        await processor.process(slider("u1", "c", 70))
        await processor.process(
            VoteEvent(voter_id="u1", nft_a_id="a", retracts_event_id=first.event_id)
        )

        rows = await store.events.all_events()
        result = replay_events(rows, config, nft_ids=["a", "b", "c"], user_ids=["u1"])

        assert result.applied == 4
        for nft_id in ["a", "b", "c"]:
            live = await store.stats.get_nft_stats(nft_id)
            rebuilt = result.nfts[nft_id]
            assert rebuilt.sliders.count == live.sliders.count
            assert rebuilt.sliders.mean == pytest.approx(live.sliders.mean)
            assert rebuilt.sliders.m2 == pytest.approx(live.sliders.m2, abs=1e-9)
            assert rebuilt.influence_sum == pytest.approx(live.influence_sum)
        live_user = await store.stats.get_user_stats("u1")
        assert result.users["u1"].sliders.count == live_user.sliders.count == 2
        assert result.users["u1"].sliders.mean == pytest.approx(live_user.sliders.mean)
        assert result.users["u1"].reliability_score == pytest.approx(live_user.reliability_score)

    async def test_rebuild_after_retraction_changes_nothing(
        self, store, config, processor, slider
    ):
        """Test rebuilding right after a retraction leaves the slider statistics alone."""
        for nft_id in ["a", "b", "c"]:
            await store.stats.register_nft(nft_id)
        first = slider("u1", "a", 95)
        await processor.process(first)
        await processor.process(slider("u1", "b", 40))
        await processor.process(slider("u1", "c", 70))
        await processor.process(
            VoteEvent(voter_id="u1", nft_a_id="a", retracts_event_id=first.event_id)
        )
        before = await store.stats.get_nft_stats("c")

        await StatisticsRebuilder(config, store).rebuild(mark_dirty=False)

        after = await store.stats.get_nft_stats("c")
        assert after.slider_mean == pytest.approx(before.slider_mean)

    def test_unmatched_retraction_skipped(self, config):
        """Test a retraction whose rating is missing from the log is skipped."""
        row = VoteEventRow(
            event_id="r-1",
            voter_id="u1",
            kind="retraction",
            nft_a_id="a",
            retracts_event_id="missing",
            timestamp=datetime.now(UTC),
        )

        result = replay_events([row], config, nft_ids=["a"])

        assert result.applied == 0
        assert result.skipped == 1
        assert result.nfts["a"].slider_count == 0

    def test_includes_unvoted_entities(self, config):
        """Test registered NFTs and users without events appear at baseline."""
        result = replay_events([], config, nft_ids=["a"], user_ids=["u1"])

        assert result.nfts["a"].elo_mean == config.elo.initial_mean
        assert result.users["u1"].reliability_score == config.reliability.initial
        assert result.applied == 0


class TestStatisticsRebuilder:
    """Tests for rebuilding stored statistics."""

    async def test_rebuild_repairs_corruption(self, store, config, seed_publishable):
        """Test a rebuild restores corrupted aggregates from the log."""
        await seed_publishable()
        good = await store.stats.get_nft_stats("hero")
        await store.stats.put_nft_stats(replace(good, elo_mean=9999.0, wins=0))

        result = await StatisticsRebuilder(config, store).rebuild()

        repaired = await store.stats.get_nft_stats("hero")
        assert repaired.elo_mean == pytest.approx(good.elo_mean)
        assert repaired.wins == 5
        assert repaired.version == good.version + 2
        assert result.applied == 7

    async def test_rebuild_marks_all_dirty(self, store, config, seed_publishable):
        """Test every NFT is flagged for rescoring after a rebuild."""
        await seed_publishable()

        await StatisticsRebuilder(config, store).rebuild()

        claims = await store.dirty.claim(10)
        assert sorted(c.nft_id for c in claims) == ["hero", "opp-1", "opp-2", "opp-3"]

    async def test_rebuild_keeps_deactivation(self, store, config, seed_publishable):
        """Test a rebuild does not reactivate deactivated NFTs."""
        await seed_publishable()
        await store.stats.deactivate_nft("opp-3")

        await StatisticsRebuilder(config, store).rebuild(mark_dirty=False)

        assert not (await store.stats.get_nft_stats("opp-3")).active
        assert await store.dirty.pending_count() == 0
