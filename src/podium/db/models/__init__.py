from podium.db.models.user import User
from podium.db.models.tournament import Tournament, TournamentMatch, TournamentParticipant
from podium.db.models.belt import Belt, BeltChallenge, BeltSettings
from podium.db.models.coin_transaction import CoinTransaction

__all__ = [
    "User",
    "Tournament",
    "TournamentParticipant",
    "TournamentMatch",
    "Belt",
    "BeltChallenge",
    "BeltSettings",
    "CoinTransaction",
]
