"""Custom exceptions for configuration errors and scoring failures."""

from __future__ import annotations


class ConfigurationError(Exception):
    """Base exception for configuration errors with optional suggestions."""

    def __init__(self, message: str, suggestion: str | None = None) -> None:
        self.message = message
        self.suggestion = suggestion
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        msg = f"[Configuration Error] {self.message}"
        if self.suggestion:
            msg += f"\n[Suggestion] {self.suggestion}"
        return msg


class ValidationError(ConfigurationError):
    """Error when configuration validation fails."""

    def __init__(self, field: str, reason: str) -> None:
        self.field = field
        super().__init__(f"Invalid value for '{field}'", reason)


class ScoringError(Exception):
    """Base exception for vote processing and score computation failures."""


class NotFoundError(ScoringError):
    """A referenced NFT or user does not exist."""

    def __init__(self, entity: str, entity_id: str) -> None:
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} '{entity_id}' not found")


class InactiveNftError(NotFoundError):
    """The NFT exists but has been deactivated."""

    def __init__(self, entity_id: str) -> None:
        super().__init__("nft", entity_id)
        self.args = (f"nft '{entity_id}' is inactive",)


class VersionConflict(ScoringError):
    """An optimistic write found a newer version than the one it read."""

    def __init__(self, entity: str, entity_id: str, expected_version: int | None) -> None:
        self.entity = entity
        self.entity_id = entity_id
        self.expected_version = expected_version
        super().__init__(
            f"{entity} '{entity_id}' changed concurrently (expected version {expected_version})"
        )


class RetryableVoteError(ScoringError):
    """Vote processing gave up after bounded retries; the event may be resubmitted."""

    def __init__(self, event_id: str, reason: str) -> None:
        self.event_id = event_id
        self.reason = reason
        super().__init__(f"vote {event_id} not applied: {reason}")


class LockTimeoutError(RetryableVoteError):
    """Per-entity locks could not be acquired in time."""

    def __init__(self, keys: list[str], timeout: float) -> None:
        self.keys = keys
        super().__init__(",".join(keys), f"lock wait exceeded {timeout}s")


class InvalidVoteShape(ScoringError):
    """A vote event is structurally invalid and was rejected before computation."""

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(f"invalid vote: {reason}")


class ComputationError(ScoringError):
    """Score computation produced a non-finite or out-of-domain value."""

    def __init__(self, nft_id: str | None, detail: str) -> None:
        self.nft_id = nft_id
        self.detail = detail
        super().__init__(f"score computation failed for {nft_id or '<unknown>'}: {detail}")
