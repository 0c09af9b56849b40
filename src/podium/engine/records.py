"""Plain records the rules engine reads and produces.

The service layer builds these from ORM rows so the engine never touches
the database. Ids are carried as strings.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum


class TournamentFormat(StrEnum):
    BRACKET = "BRACKET"
    CHAMPIONSHIP = "CHAMPIONSHIP"
    KING_OF_THE_HILL = "KING_OF_THE_HILL"


class TournamentStatus(StrEnum):
    UPCOMING = "UPCOMING"
    REGISTRATION_OPEN = "REGISTRATION_OPEN"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class ParticipantStatus(StrEnum):
    ACTIVE = "ACTIVE"
    ELIMINATED = "ELIMINATED"


class MatchStatus(StrEnum):
    SCHEDULED = "SCHEDULED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    FORFEITED = "FORFEITED"
    BYE = "BYE"


TERMINAL_MATCH_STATUSES = frozenset(
    {MatchStatus.COMPLETED, MatchStatus.FORFEITED, MatchStatus.BYE}
)


class Position(StrEnum):
    PRO = "PRO"
    CON = "CON"


class ReseedMethod(StrEnum):
    SEED = "SEED"
    SCORE = "SCORE"
    ELO_BASED = "ELO_BASED"


class BeltType(StrEnum):
    ROOKIE = "ROOKIE"
    CATEGORY = "CATEGORY"
    CHAMPIONSHIP = "CHAMPIONSHIP"
    UNDEFEATED = "UNDEFEATED"
    TOURNAMENT = "TOURNAMENT"


class BeltStatus(StrEnum):
    VACANT = "VACANT"
    ACTIVE = "ACTIVE"
    MANDATORY = "MANDATORY"
    STAKED = "STAKED"
    INACTIVE = "INACTIVE"


class ChallengeStatus(StrEnum):
    PENDING = "PENDING"
    ACCEPTED = "ACCEPTED"
    DECLINED = "DECLINED"
    EXPIRED = "EXPIRED"
    COMPLETED = "COMPLETED"


class EligibilityReason(StrEnum):
    NO_HOLDER = "NO_HOLDER"
    SELF_CHALLENGE = "SELF_CHALLENGE"
    BELT_STAKED = "BELT_STAKED"
    DUPLICATE_PENDING = "DUPLICATE_PENDING"
    GRACE_PERIOD = "GRACE_PERIOD"
    COOLDOWN = "COOLDOWN"
    INSUFFICIENT_COINS = "INSUFFICIENT_COINS"
    CHALLENGE_EXPIRED = "CHALLENGE_EXPIRED"
    NOT_BELT_HOLDER = "NOT_BELT_HOLDER"


class CoinTransactionType(StrEnum):
    BELT_CHALLENGE_ENTRY = "BELT_CHALLENGE_ENTRY"
    BELT_CHALLENGE_REWARD = "BELT_CHALLENGE_REWARD"
    BELT_CHALLENGE_CONSOLATION = "BELT_CHALLENGE_CONSOLATION"
    PLATFORM_FEE = "PLATFORM_FEE"
    BELT_TOURNAMENT_CREATION = "BELT_TOURNAMENT_CREATION"
    BELT_TOURNAMENT_REWARD = "BELT_TOURNAMENT_REWARD"
    TOURNAMENT_PRIZE = "TOURNAMENT_PRIZE"


# ── Tournaments ───────────────────────────────────────────────


@dataclass
class TournamentRecord:
    id: str
    format: TournamentFormat
    status: TournamentStatus
    current_round: int
    total_rounds: int
    max_participants: int
    reseed_after_round: bool = False
    reseed_method: ReseedMethod = ReseedMethod.ELO_BASED
    elimination_percent: int = 25


@dataclass
class ParticipantRecord:
    id: str
    seed: int
    status: ParticipantStatus = ParticipantStatus.ACTIVE
    selected_position: Position | None = None
    cumulative_score: float = 0.0
    wins: int = 0
    losses: int = 0
    elo_at_start: float = 1200.0
    elimination_round: int | None = None
    elimination_reason: str | None = None


@dataclass
class MatchRecord:
    id: str
    round: int
    position: int
    participant1_id: str | None
    participant2_id: str | None = None
    winner_id: str | None = None
    status: MatchStatus = MatchStatus.SCHEDULED
    participant1_score: float | None = None
    participant2_score: float | None = None
    judge_commentary: str | None = None

    @property
    def participant_ids(self) -> list[str]:
        return [p for p in (self.participant1_id, self.participant2_id) if p is not None]

    def score_for(self, participant_id: str) -> float | None:
        if participant_id == self.participant1_id:
            return self.participant1_score
        if participant_id == self.participant2_id:
            return self.participant2_score
        return None


# ── Belts ─────────────────────────────────────────────────────


@dataclass(frozen=True)
class BeltRules:
    """Per-belt-type settings, passed explicitly into every policy call."""

    defense_period_days: int = 30
    inactivity_days: int = 30
    mandatory_defense_days: int = 60
    grace_period_days: int = 30
    max_declines: int = 2
    challenge_cooldown_days: int = 7
    challenge_expiry_days: int = 3
    free_challenges_per_week: int = 1
    elo_range: int = 200
    entry_fee_base: int = 100
    entry_fee_multiplier: float = 1.5
    winner_reward_percent: int = 60
    loser_consolation_percent: int = 30
    platform_fee_percent: int = 10
    tournament_belt_cost_small: int = 500
    tournament_belt_cost_medium: int = 1000
    tournament_belt_cost_large: int = 2000
    require_coins_for_challenge: bool = True
    free_challenge_window_days: int = 7


@dataclass
class BeltRecord:
    id: str
    type: BeltType
    status: BeltStatus
    holder_id: str | None
    became_holder_at: datetime | None = None
    last_defended_at: datetime | None = None
    decline_count: int = 0
    coin_value: int = 0
    is_staked: bool = False

    @property
    def last_defense(self) -> datetime | None:
        return self.last_defended_at or self.became_holder_at


@dataclass
class ChallengeRecord:
    id: str
    belt_id: str
    challenger_id: str
    holder_id: str
    status: ChallengeStatus
    created_at: datetime
    expires_at: datetime
    entry_fee: int = 0
    coin_reward: int = 0
    uses_free_challenge: bool = False
    free_consumed_at: datetime | None = None


@dataclass
class ChallengerAccount:
    """What the policy needs to know about a challenger."""

    user_id: str
    coins: int
    # Challenges this user created for the belt under consideration
    belt_challenges: list[ChallengeRecord] = field(default_factory=list)
    # When this user's free challenges were consumed, across all belts
    free_consumed_at: list[datetime] = field(default_factory=list)
