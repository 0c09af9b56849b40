from __future__ import annotations


class PodiumError(Exception):
    """Base class for rule violations raised by the engine."""


class ValidationError(PodiumError):
    """Raised when match or request data is malformed or inconsistent."""


class EligibilityError(PodiumError):
    """Raised when a challenge action violates a belt policy rule."""

    def __init__(self, reason: str, message: str | None = None) -> None:
        self.reason = str(reason)
        super().__init__(message or f"Challenge not allowed: {self.reason}")


class StateConflictError(PodiumError):
    """Raised on a transition from a terminal or unexpected state."""

    def __init__(self, entity: str, current: str, attempted: str) -> None:
        self.entity = entity
        self.current = str(current)
        self.attempted = attempted
        super().__init__(
            f"Cannot {attempted} {entity} in state {self.current}"
        )


class ChallengeAlreadyDeclinedError(StateConflictError):
    """Declining a challenge that is already declined. Callers treat it as success."""

    def __init__(self, challenge_id: str) -> None:
        self.challenge_id = challenge_id
        super().__init__("challenge", "DECLINED", "decline")


class RoundIncompleteError(StateConflictError):
    """Raised when advancing a round that still has non-terminal matches."""

    def __init__(self, round_number: int, pending: int) -> None:
        self.round_number = round_number
        self.pending = pending
        super().__init__("round", f"{round_number} ({pending} matches pending)", "advance")


class ConfigurationError(PodiumError):
    """Raised when belt settings are missing or inconsistent."""


class NotFoundError(PodiumError):
    def __init__(self, entity: str, entity_id: object) -> None:
        self.entity = entity
        self.entity_id = str(entity_id)
        super().__init__(f"{entity} {self.entity_id} not found")


class BeltSystemDisabledError(ConfigurationError):
    def __init__(self) -> None:
        super().__init__("The belt system is disabled")
