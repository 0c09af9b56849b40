from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

from podium.engine.errors import ConfigurationError, ValidationError
from podium.engine.records import BeltRules, BeltType

# Exponent applied to the fee multiplier per belt tier
BELT_TIER_FACTOR = {
    BeltType.ROOKIE: 0,
    BeltType.CATEGORY: 1,
    BeltType.TOURNAMENT: 1,
    BeltType.UNDEFEATED: 2,
    BeltType.CHAMPIONSHIP: 3,
}

DEFAULT_PRIZE_PERCENTS = (60, 30, 10)


@dataclass(frozen=True)
class PayoutSplit:
    winner: int
    loser: int
    platform: int

    @property
    def total(self) -> int:
        return self.winner + self.loser + self.platform


def validate_rules(rules: BeltRules) -> BeltRules:
    """Reject settings that would produce a nonsensical split."""
    percents = {
        "winner_reward_percent": rules.winner_reward_percent,
        "loser_consolation_percent": rules.loser_consolation_percent,
        "platform_fee_percent": rules.platform_fee_percent,
    }
    for name, value in percents.items():
        if value < 0 or value > 100:
            raise ConfigurationError(f"{name}={value} must be between 0 and 100")
    total = sum(percents.values())
    if total > 100:
        raise ConfigurationError(f"Reward and fee percentages sum to {total}, more than 100")
    if rules.entry_fee_base < 0 or rules.entry_fee_multiplier <= 0:
        raise ConfigurationError("Entry fee base must be >= 0 and multiplier > 0")
    if rules.max_declines < 0 or rules.challenge_expiry_days <= 0:
        raise ConfigurationError("max_declines must be >= 0 and challenge_expiry_days > 0")
    return rules


def compute_entry_fee(base_fee: float, multiplier: float, context_factor: int = 0) -> int:
    """entry_fee = base_fee * multiplier ** context_factor, rounded half-up to a whole coin."""
    if base_fee < 0 or multiplier <= 0:
        raise ConfigurationError(f"Invalid entry fee settings: base={base_fee}, multiplier={multiplier}")
    if context_factor < 0:
        raise ValidationError(f"Context factor must be >= 0, got {context_factor}")
    fee = Decimal(str(base_fee)) * Decimal(str(multiplier)) ** int(context_factor)
    return int(fee.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def belt_entry_fee(belt_type: BeltType, rules: BeltRules) -> int:
    return compute_entry_fee(
        rules.entry_fee_base, rules.entry_fee_multiplier, BELT_TIER_FACTOR[BeltType(belt_type)]
    )


def compute_payout_split(total_pool: int, rules: BeltRules) -> PayoutSplit:
    """Split a challenge pool. Shares are floored and the platform keeps the remainder."""
    validate_rules(rules)
    if total_pool < 0:
        raise ValidationError(f"Pool must be >= 0, got {total_pool}")
    winner = total_pool * rules.winner_reward_percent // 100
    loser = total_pool * rules.loser_consolation_percent // 100
    return PayoutSplit(winner=winner, loser=loser, platform=total_pool - winner - loser)


def tournament_belt_cost(size: int, rules: BeltRules) -> int:
    """Coins charged once, when a belt tournament is created."""
    if size < 2:
        raise ValidationError(f"Tournament size must be >= 2, got {size}")
    if size <= 8:
        return rules.tournament_belt_cost_small
    if size <= 16:
        return rules.tournament_belt_cost_medium
    return rules.tournament_belt_cost_large


def compute_prize_distribution(pool: int, percents: list[int] | tuple[int, ...] = DEFAULT_PRIZE_PERCENTS) -> list[int]:
    """Prize for each finishing place, floored. Place 1 first."""
    if pool < 0:
        raise ValidationError(f"Prize pool must be >= 0, got {pool}")
    if any(p < 0 for p in percents) or sum(percents) > 100:
        raise ConfigurationError(f"Invalid prize distribution {list(percents)}")
    return [pool * p // 100 for p in percents]
