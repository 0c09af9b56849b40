from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram

# Tournament metrics
rounds_advanced_total = Counter(
    "podium_rounds_advanced_total", "Tournament rounds advanced", ["format"]
)
tournaments_completed_total = Counter(
    "podium_tournaments_completed_total", "Tournaments completed", ["format"]
)
tournaments_active = Gauge("podium_tournaments_active", "Tournaments currently in progress")
participants_eliminated_total = Counter(
    "podium_participants_eliminated_total", "Participants eliminated", ["format"]
)
round_advance_duration_seconds = Histogram(
    "podium_round_advance_duration_seconds", "Time to validate and apply a round",
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0],
)

# Belt metrics
challenges_total = Counter(
    "podium_challenges_total", "Belt challenge transitions", ["belt_type", "status"]
)
challenge_rejections_total = Counter(
    "podium_challenge_rejections_total", "Challenge actions rejected by policy", ["reason"]
)
belt_transfers_total = Counter("podium_belt_transfers_total", "Belts changing hands", ["belt_type"])

# Coin metrics
coins_moved_total = Counter("podium_coins_moved_total", "Coins credited or debited", ["type"])
