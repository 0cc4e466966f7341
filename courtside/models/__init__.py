from courtside.core.database import Base

# Import all models here to ensure they are registered with Base
from .user import User
from .tournament import Tournament
from .registration import Registration
from .match import Match
from .american import AmericanTournamentPairing, AmericanTournamentRound, AmericanTournamentStanding

__all__ = [
    "Base",
    "User",
    "Tournament",
    "Registration",
    "Match",
    "AmericanTournamentRound",
    "AmericanTournamentPairing",
    "AmericanTournamentStanding",
]
