from enum import Enum
from typing import Dict, FrozenSet


class TournamentType(str, Enum):
    SINGLES = "Singles"
    DOUBLES = "Doubles"
    MIXED_DOUBLES = "MixedDoubles"
    AMERICAN = "American"


class TournamentFormat(str, Enum):
    SINGLE_ELIMINATION = "SingleElimination"
    DOUBLE_ELIMINATION = "DoubleElimination"
    ROUND_ROBIN = "RoundRobin"
    SWISS_SYSTEM = "SwissSystem"


class TournamentStatus(str, Enum):
    DRAFT = "Draft"
    OPEN_FOR_REGISTRATION = "OpenForRegistration"
    REGISTRATION_CLOSED = "RegistrationClosed"
    IN_PROGRESS = "InProgress"
    COMPLETED = "Completed"
    CANCELLED = "Cancelled"


class RegistrationStatus(str, Enum):
    PENDING = "Pending"
    CONFIRMED = "Confirmed"
    CHECKED_IN = "CheckedIn"
    CANCELLED = "Cancelled"


class PaymentStatus(str, Enum):
    PENDING = "Pending"
    PAID = "Paid"
    REFUNDED = "Refunded"
    WAIVED = "Waived"


class MatchStatus(str, Enum):
    SCHEDULED = "Scheduled"
    IN_PROGRESS = "InProgress"
    COMPLETED = "Completed"
    CANCELLED = "Cancelled"
    WALKOVER = "Walkover"


class RoundStatus(str, Enum):
    PENDING = "Pending"
    IN_PROGRESS = "InProgress"
    COMPLETED = "Completed"


TEAM_BASED_TYPES: FrozenSet[TournamentType] = frozenset(
    {TournamentType.DOUBLES, TournamentType.MIXED_DOUBLES, TournamentType.AMERICAN}
)

# Registrations carry a second player only for fixed-team formats; American teams are formed per pairing.
FIXED_TEAM_TYPES: FrozenSet[TournamentType] = frozenset(
    {TournamentType.DOUBLES, TournamentType.MIXED_DOUBLES}
)

ELIMINATION_FORMATS: FrozenSet[TournamentFormat] = frozenset(
    {TournamentFormat.SINGLE_ELIMINATION, TournamentFormat.DOUBLE_ELIMINATION}
)

TOURNAMENT_TRANSITIONS: Dict[TournamentStatus, FrozenSet[TournamentStatus]] = {
    TournamentStatus.DRAFT: frozenset(
        {TournamentStatus.OPEN_FOR_REGISTRATION, TournamentStatus.CANCELLED}
    ),
    TournamentStatus.OPEN_FOR_REGISTRATION: frozenset(
        {TournamentStatus.DRAFT, TournamentStatus.REGISTRATION_CLOSED, TournamentStatus.CANCELLED}
    ),
    TournamentStatus.REGISTRATION_CLOSED: frozenset(
        {
            TournamentStatus.OPEN_FOR_REGISTRATION,
            TournamentStatus.IN_PROGRESS,
            TournamentStatus.CANCELLED,
        }
    ),
    TournamentStatus.IN_PROGRESS: frozenset(
        {TournamentStatus.COMPLETED, TournamentStatus.CANCELLED}
    ),
    TournamentStatus.COMPLETED: frozenset(),
    TournamentStatus.CANCELLED: frozenset(),
}

REGISTRATION_TRANSITIONS: Dict[RegistrationStatus, FrozenSet[RegistrationStatus]] = {
    RegistrationStatus.PENDING: frozenset(
        {RegistrationStatus.CONFIRMED, RegistrationStatus.CANCELLED}
    ),
    RegistrationStatus.CONFIRMED: frozenset(
        {RegistrationStatus.CHECKED_IN, RegistrationStatus.CANCELLED}
    ),
    RegistrationStatus.CHECKED_IN: frozenset({RegistrationStatus.CANCELLED}),
    RegistrationStatus.CANCELLED: frozenset(),
}

ACTIVE_REGISTRATION_STATUSES: FrozenSet[RegistrationStatus] = frozenset(
    {RegistrationStatus.CONFIRMED, RegistrationStatus.CHECKED_IN}
)


def can_transition(current: TournamentStatus, target: TournamentStatus) -> bool:
    return target in TOURNAMENT_TRANSITIONS[current]


def can_transition_registration(current: RegistrationStatus, target: RegistrationStatus) -> bool:
    return target in REGISTRATION_TRANSITIONS[current]
