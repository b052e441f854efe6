from .base import Base

# Competition structure
from .competition import Competition, TimeSlot, Court, Player

# Rounds and play
from .round import Round, RoundStatus, CourtGroup, CourtPlayer, Attendance, Match

# Standings
from .standings import RoundPoints, LeagueRanking

# Rules
from .rules import RuleSet, RulesScope
