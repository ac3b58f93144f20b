#!/usr/bin/env python
"""Run a synthetic voting simulation against a throwaway database.

Each NFT gets a hidden quality; simulated voters pick winners and give slider
ratings with noise and a personal bias. Afterwards the published leaderboard is
compared with the hidden ranking.
"""

import asyncio
import random
import tempfile
from pathlib import Path

from poa_scoring.core.config import ScoringConfig
from poa_scoring.services.scoring import ScoringService
from poa_scoring.services.storage import ScoringStore
from poa_scoring.services.voting import VoteEvent, VoteProcessor

NFT_COUNT = 12
VOTER_COUNT = 40
VOTES = 1500
SEED = 2026


def rank_correlation(expected: list[str], actual: list[str]) -> float:
    """Spearman correlation between two orderings of the same ids."""
    n = len(expected)
    if n < 2:
        return 1.0
    position = {nft_id: i for i, nft_id in enumerate(actual)}
    d_squared = sum((i - position[nft_id]) ** 2 for i, nft_id in enumerate(expected))
    return 1.0 - 6.0 * d_squared / (n * (n * n - 1))


def simulate_event(
    rng: random.Random, quality: dict[str, float], voters: dict[str, float]
) -> VoteEvent:
    voter_id = rng.choice(list(voters))
    bias = voters[voter_id]

    if rng.random() < 0.6:
        nft_a, nft_b = rng.sample(list(quality), 2)
        noisy_a = quality[nft_a] + rng.gauss(0, 10)
        noisy_b = quality[nft_b] + rng.gauss(0, 10)
        winner = nft_a if noisy_a >= noisy_b else nft_b
        return VoteEvent(
            voter_id=voter_id,
            nft_a_id=nft_a,
            nft_b_id=nft_b,
            winner_id=winner,
            is_fire_vote=quality[winner] > 85 and rng.random() < 0.3,
        )

    nft_id = rng.choice(list(quality))
    value = max(0.0, min(100.0, quality[nft_id] + bias + rng.gauss(0, 8)))
    return VoteEvent(voter_id=voter_id, nft_a_id=nft_id, slider_value=round(value, 1))


async def main() -> None:
    """Run the simulation."""
    rng = random.Random(SEED)
    quality = {f"nft-{i:02d}": rng.uniform(20, 95) for i in range(NFT_COUNT)}
    voters = {f"voter-{i:02d}": rng.gauss(0, 12) for i in range(VOTER_COUNT)}

    with tempfile.TemporaryDirectory() as tmp:
        config = ScoringConfig(database_url=f"sqlite:///{Path(tmp) / 'simulation.db'}")
        store = ScoringStore(config)
        processor = VoteProcessor(config, store, scoring=ScoringService(config, store))

        try:
            for nft_id in quality:
                await store.stats.register_nft(nft_id)

            print(f"Simulating {VOTES} votes over {NFT_COUNT} NFTs...")
            for _ in range(VOTES):
                await processor.process(simulate_event(rng, quality, voters))

            board = await store.scores.leaderboard(limit=NFT_COUNT)
            print(f"\n{'NFT':<8} {'POA':>7} {'Conf':>6} {'Hidden':>7}")
            for record in board:
                print(
                    f"{record.nft_id:<8} {record.poa_value:>7.2f} "
                    f"{record.confidence:>6.1f} {quality[record.nft_id]:>7.1f}"
                )

            published = [record.nft_id for record in board]
            hidden = sorted(published, key=lambda nft_id: quality[nft_id], reverse=True)
            print(f"\nPublished: {len(published)}/{NFT_COUNT}")
            correlation = rank_correlation(hidden, published)
            print(f"Rank correlation with hidden quality: {correlation:.3f}")
        finally:
            await store.close()


if __name__ == "__main__":
    asyncio.run(main())
