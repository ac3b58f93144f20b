"""Pure application of a single vote to NFT and user statistics.

Nothing here touches storage: the processor loads the records, calls ``apply_vote``,
and commits whatever comes back. Rebuilding from the event log runs the same fold.
"""

from __future__ import annotations

from dataclasses import dataclass, replace

from poa_scoring.core.config import ScoringConfig
from poa_scoring.core.errors import InvalidVoteShape
from poa_scoring.ranking.elo import calculate_expected_score, update_elo_bayesian
from poa_scoring.ranking.records import NftRating, UserRating
from poa_scoring.ranking.reliability import influence_weight, update_reliability_score
from poa_scoring.ranking.sliders import normalize_slider_value, user_calibration
from poa_scoring.services.voting.events import VoteEvent, VoteKind


@dataclass(frozen=True)
class RecordedSlider:
    """What a committed slider rating contributed, needed to retract it exactly."""

    event_id: str
    voter_id: str
    nft_id: str
    raw_value: float
    normalized_value: float
    influence_weight: float
    is_fire_vote: bool


@dataclass(frozen=True)
class VoteEffects:
    """Statistics after applying one vote.

    Attributes:
        nfts: Updated NFT records, in the order they were passed in.
        user: Updated voter record.
        influence_weight: Weight the voter's contribution carried.
        normalized_slider: Normalized slider value applied (slider votes only).
        agreed: Consensus agreement, None when the vote gave no consensus signal.
    """

    nfts: tuple[NftRating, ...]
    user: UserRating
    influence_weight: float
    normalized_slider: float | None = None
    agreed: bool | None = None


def _voter_weight(user: UserRating, config: ScoringConfig) -> float:
    return influence_weight(
        user.reliability_score,
        floor=config.reliability.min,
        ceiling=config.reliability.max,
    )


def _with_reliability(
    user: UserRating, agreed: bool, signal: float, config: ScoringConfig
) -> UserRating:
    rel = config.reliability
    score = update_reliability_score(
        user.reliability_score,
        agreed,
        signal,
        alpha=rel.alpha,
        agree_target=rel.agree_target,
        floor=rel.min,
        ceiling=rel.max,
    )
    return replace(user, reliability_score=score, reliability_count=user.reliability_count + 1)


def _with_fire(nft: NftRating, weight: float) -> NftRating:
    return replace(
        nft,
        fire_count=nft.fire_count + 1,
        fire_weight_sum=nft.fire_weight_sum + weight,
    )


def apply_head_to_head(
    event: VoteEvent,
    nft_a: NftRating,
    nft_b: NftRating,
    user: UserRating,
    config: ScoringConfig,
) -> VoteEffects:
    """Update both NFTs symmetrically from their pre-vote means.

    The voter's reliability moves toward agreement when the winner was the NFT with
    the higher prior mean; equal means and ties carry no consensus signal.
    """
    weight = _voter_weight(user, config)
    if event.is_tie:
        outcome_a = 0.5
    else:
        outcome_a = 1.0 if event.winner_id == nft_a.nft_id else 0.0

    elo = config.elo
    params = {
        "k_factor": elo.k_factor,
        "initial_uncertainty": elo.initial_uncertainty,
        "super_vote_multiplier": elo.super_vote_multiplier,
        "uncertainty_floor": elo.uncertainty_floor,
        "uncertainty_decay": elo.uncertainty_decay,
    }
    update_a = update_elo_bayesian(
        nft_a.elo_mean,
        nft_a.elo_uncertainty,
        nft_b.elo_mean,
        outcome_a,
        event.is_super_vote,
        **params,
    )
    update_b = update_elo_bayesian(
        nft_b.elo_mean,
        nft_b.elo_uncertainty,
        nft_a.elo_mean,
        1.0 - outcome_a,
        event.is_super_vote,
        **params,
    )

    new_a = replace(
        nft_a,
        elo_mean=update_a.mean,
        elo_uncertainty=update_a.uncertainty,
        total_h2h_votes=nft_a.total_h2h_votes + 1,
        wins=nft_a.wins + (outcome_a == 1.0),
        losses=nft_a.losses + (outcome_a == 0.0),
    ).with_influence(weight)
    new_b = replace(
        nft_b,
        elo_mean=update_b.mean,
        elo_uncertainty=update_b.uncertainty,
        total_h2h_votes=nft_b.total_h2h_votes + 1,
        wins=nft_b.wins + (outcome_a == 0.0),
        losses=nft_b.losses + (outcome_a == 1.0),
    ).with_influence(weight)

    if event.is_fire_vote:
        if event.winner_id == nft_a.nft_id:
            new_a = _with_fire(new_a, weight)
        else:
            new_b = _with_fire(new_b, weight)

    agreed: bool | None = None
    new_user = user
    if not event.is_tie and nft_a.elo_mean != nft_b.elo_mean:
        favorite, underdog = (nft_a, nft_b) if nft_a.elo_mean > nft_b.elo_mean else (nft_b, nft_a)
        agreed = event.winner_id == favorite.nft_id
        signal = 2.0 * abs(calculate_expected_score(favorite.elo_mean, underdog.elo_mean) - 0.5)
        new_user = _with_reliability(user, agreed, signal, config)

    return VoteEffects(nfts=(new_a, new_b), user=new_user, influence_weight=weight, agreed=agreed)


def apply_slider(
    event: VoteEvent,
    nft: NftRating,
    user: UserRating,
    config: ScoringConfig,
) -> VoteEffects:
    """Normalize a slider rating against the voter's calibration and fold it in.

    The NFT accumulates the normalized value; the user accumulates the raw value.
    Agreement is judged against the NFT's slider mean before this rating.
    """
    if event.slider_value is None:
        raise InvalidVoteShape("slider vote without a slider value")
    sliders = config.sliders
    weight = _voter_weight(user, config)
    mean, std = user_calibration(
        user.sliders,
        default_mean=sliders.default_user_mean,
        default_std=sliders.default_user_std,
        min_std=sliders.min_user_std,
        min_ratings=sliders.calibration_min_ratings,
    )
    normalized = normalize_slider_value(event.slider_value, mean, std, sliders.z_score_clamp)

    new_nft = replace(nft, sliders=nft.sliders.push(normalized)).with_influence(weight)
    if event.is_fire_vote:
        new_nft = _with_fire(new_nft, weight)

    new_user = replace(user, sliders=user.sliders.push(event.slider_value))
    agreed: bool | None = None
    prior_mean = nft.slider_mean
    if prior_mean is not None:
        agreed = abs(normalized - prior_mean) <= sliders.agreement_tolerance
        new_user = _with_reliability(new_user, agreed, 1.0, config)

    return VoteEffects(
        nfts=(new_nft,),
        user=new_user,
        influence_weight=weight,
        normalized_slider=normalized,
        agreed=agreed,
    )


def apply_retraction(
    event: VoteEvent,
    original: RecordedSlider,
    nft: NftRating,
    user: UserRating,
) -> VoteEffects:
    """Reverse exactly what a recorded slider rating contributed.

    Reliability adjustments made when the rating was cast are not reverted.
    """
    if original.voter_id != event.voter_id:
        raise InvalidVoteShape("only the original voter can retract a rating")
    if original.nft_id != nft.nft_id or event.nft_a_id != original.nft_id:
        raise InvalidVoteShape("retraction must reference the rated NFT")

    new_nft = replace(
        nft,
        sliders=nft.sliders.remove(original.normalized_value),
        influence_sum=max(0.0, nft.influence_sum - original.influence_weight),
        influence_count=max(0, nft.influence_count - 1),
    )
    if original.is_fire_vote:
        new_nft = replace(
            new_nft,
            fire_count=max(0, new_nft.fire_count - 1),
            fire_weight_sum=max(0.0, new_nft.fire_weight_sum - original.influence_weight),
        )
    new_user = user
    if user.sliders.count > 0:
        new_user = replace(user, sliders=user.sliders.remove(original.raw_value))

    return VoteEffects(nfts=(new_nft,), user=new_user, influence_weight=original.influence_weight)


def apply_vote(
    event: VoteEvent,
    nfts: dict[str, NftRating],
    user: UserRating,
    config: ScoringConfig,
    retracted: RecordedSlider | None = None,
) -> VoteEffects:
    """Dispatch a validated event to the matching fold.

    Args:
        event: Shape-validated vote event.
        nfts: Current records for every NFT the event touches.
        user: Current voter record.
        config: Scoring configuration.
        retracted: The recorded rating, required for retraction events.

    Returns:
        VoteEffects with the updated records.
    """
    kind = event.kind
    if kind is VoteKind.HEAD_TO_HEAD:
        return apply_head_to_head(event, nfts[event.nft_a_id], nfts[event.nft_b_id], user, config)
    if kind is VoteKind.SLIDER:
        return apply_slider(event, nfts[event.nft_a_id], user, config)
    if retracted is None:
        raise InvalidVoteShape(f"retracted event {event.retracts_event_id} is not a slider rating")
    return apply_retraction(event, retracted, nfts[event.nft_a_id], user)
