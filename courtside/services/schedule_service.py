"""Round-robin and Swiss scheduling for formats that are not bracketed."""
import datetime
from dataclasses import dataclass
from typing import FrozenSet, List, Optional, Sequence, Set, Tuple

import structlog
from sqlalchemy import func
from sqlalchemy.orm import Session

from courtside.core.database import atomic
from courtside.core.errors import ConflictError, FormatNotSupported, InvalidBracketSize, ValidationError
from courtside.core.locks import tournament_guard
from courtside.models.american import AmericanTournamentStanding
from courtside.models.enums import MatchStatus, TournamentFormat, TournamentStatus, TournamentType
from courtside.models.match import Match
from courtside.models.registration import Registration
from courtside.services import standings_service
from courtside.services.registration_service import seeded_entries
from courtside.services.tournament_service import ensure_organizer, get_tournament_for_update

logger = structlog.get_logger(__name__)

# Upper bound on opponents tried while searching for a rematch-free Swiss round.
MAX_PAIRING_STEPS = 20000


def round_robin_rounds(entries: Sequence[int]) -> List[List[Tuple[int, int]]]:
    """
    Circle method: the first entry stays put, everybody else rotates one place
    per round. An odd field gets a phantom entry; whoever meets it sits out.
    """
    slots: List[Optional[int]] = list(entries)
    if len(slots) % 2:
        slots.append(None)
    size = len(slots)
    rounds: List[List[Tuple[int, int]]] = []
    for _ in range(size - 1):
        pairs = []
        for i in range(size // 2):
            home, away = slots[i], slots[size - 1 - i]
            if home is not None and away is not None:
                pairs.append((home, away))
        rounds.append(pairs)
        slots = [slots[0], slots[-1]] + slots[1:-1]
    return rounds


@dataclass(frozen=True)
class SwissEntry:
    registration_id: int
    score: int
    tie_break: int
    seed_position: int


@dataclass(frozen=True)
class SwissPair:
    entry_a: int
    entry_b: Optional[int]  # None is a bye


def _pair_key(a: int, b: int) -> FrozenSet[int]:
    return frozenset((a, b))


def _sort_key(entry: SwissEntry) -> tuple:
    return (-entry.score, -entry.tie_break, entry.seed_position, entry.registration_id)


def _pick_bye(entries: List[SwissEntry], bye_history: Set[int]) -> SwissEntry:
    lowest_first = sorted(entries, key=_sort_key, reverse=True)
    for entry in lowest_first:
        if entry.registration_id not in bye_history:
            return entry
    return lowest_first[0]


def _pair_without_rematches(
    remaining: List[SwissEntry], previous_pairs: Set[FrozenSet[int]], budget: List[int]
) -> Optional[List[Tuple[int, int]]]:
    """Depth-first: the top entry tries opponents in table order, backing up when the rest cannot be paired."""
    if not remaining:
        return []
    entry, rest = remaining[0], remaining[1:]
    for index, candidate in enumerate(rest):
        if budget[0] <= 0:
            return None
        budget[0] -= 1
        if _pair_key(entry.registration_id, candidate.registration_id) in previous_pairs:
            continue
        tail = _pair_without_rematches(rest[:index] + rest[index + 1:], previous_pairs, budget)
        if tail is not None:
            return [(entry.registration_id, candidate.registration_id)] + tail
    return None


def _pair_greedily(remaining: List[SwissEntry], previous_pairs: Set[FrozenSet[int]]) -> List[Tuple[int, int]]:
    remaining = list(remaining)
    pairs = []
    while remaining:
        entry = remaining.pop(0)
        opponent_index = 0
        for index, candidate in enumerate(remaining):
            if _pair_key(entry.registration_id, candidate.registration_id) not in previous_pairs:
                opponent_index = index
                break
        opponent = remaining.pop(opponent_index)
        pairs.append((entry.registration_id, opponent.registration_id))
    return pairs


def swiss_pairs(
    entries: Sequence[SwissEntry],
    previous_pairs: Set[FrozenSet[int]],
    bye_history: Optional[Set[int]] = None,
) -> List[SwissPair]:
    """
    Top of the table plays the best-placed opponent it has not met yet. When no
    pairing of the whole field avoids every rematch, the greedy pairing is used
    and repeats are accepted.
    """
    remaining = sorted(entries, key=_sort_key)
    bye: Optional[SwissPair] = None

    if len(remaining) % 2 == 1:
        bye_entry = _pick_bye(remaining, bye_history or set())
        remaining = [e for e in remaining if e.registration_id != bye_entry.registration_id]
        bye = SwissPair(entry_a=bye_entry.registration_id, entry_b=None)

    matched = _pair_without_rematches(remaining, previous_pairs, [MAX_PAIRING_STEPS])
    if matched is None:
        logger.warning("swiss_rematch_unavoidable", entries=len(remaining))
        matched = _pair_greedily(remaining, previous_pairs)

    pairs = [SwissPair(entry_a=a, entry_b=b) for a, b in matched]
    if bye is not None:
        pairs.append(bye)
    return pairs


def _swiss_entries(db: Session, tournament_id: int, registrations: List[Registration]) -> List[SwissEntry]:
    rows = (
        db.query(AmericanTournamentStanding)
        .filter(AmericanTournamentStanding.tournament_id == tournament_id)
        .all()
    )
    by_player = {row.player_id: row for row in rows}
    entries = []
    for position, registration in enumerate(registrations):
        line = by_player.get(registration.player1_id) or standings_service.StandingLine(player_id=registration.player1_id)
        entries.append(
            SwissEntry(
                registration_id=registration.id,
                score=line.total_points,
                tie_break=line.set_difference,
                seed_position=position,
            )
        )
    return entries


def _ensure_schedulable(tournament) -> None:
    if tournament.tournament_type == TournamentType.AMERICAN:
        raise FormatNotSupported("American tournaments are played in rotating rounds.")
    if tournament.format not in (TournamentFormat.ROUND_ROBIN, TournamentFormat.SWISS_SYSTEM):
        raise FormatNotSupported(f"{tournament.format.value} tournaments use a bracket, not a schedule.")


def _create_round_robin(db: Session, tournament, entries: List[Registration]) -> List[Match]:
    if db.query(Match.id).filter(Match.tournament_id == tournament.id).first() is not None:
        raise ConflictError("A schedule already exists for this tournament.")
    matches = []
    for round_number, pairs in enumerate(round_robin_rounds([e.id for e in entries]), start=1):
        for match_number, (home, away) in enumerate(pairs, start=1):
            match = Match(
                tournament_id=tournament.id,
                round=round_number,
                match_number=match_number,
                team1_id=home,
                team2_id=away,
                status=MatchStatus.SCHEDULED,
                is_loser_bracket=False,
                standings_applied=False,
            )
            db.add(match)
            matches.append(match)
    return matches


def _create_swiss_round(db: Session, tournament, entries: List[Registration]) -> List[Match]:
    played = db.query(Match).filter(Match.tournament_id == tournament.id).all()
    open_matches = [m for m in played if m.status not in (MatchStatus.COMPLETED, MatchStatus.WALKOVER)]
    if open_matches:
        raise ConflictError(f"The current Swiss round still has {len(open_matches)} open matches.")

    previous_pairs: Set[FrozenSet[int]] = set()
    bye_history: Set[int] = set()
    for match in played:
        if match.team2_id is None:
            bye_history.add(match.team1_id)
        else:
            previous_pairs.add(_pair_key(match.team1_id, match.team2_id))

    round_number = (db.query(func.max(Match.round)).filter(Match.tournament_id == tournament.id).scalar() or 0) + 1
    pairs = swiss_pairs(_swiss_entries(db, tournament.id, entries), previous_pairs, bye_history)

    now = datetime.datetime.utcnow()
    matches = []
    for match_number, pair in enumerate(pairs, start=1):
        match = Match(
            tournament_id=tournament.id,
            round=round_number,
            match_number=match_number,
            team1_id=pair.entry_a,
            team2_id=pair.entry_b,
            status=MatchStatus.SCHEDULED,
            is_loser_bracket=False,
            standings_applied=False,
        )
        if pair.entry_b is None:
            # Bye: decided on creation, not folded into standings.
            match.status = MatchStatus.WALKOVER
            match.winner_id = pair.entry_a
            match.end_time = now
            match.notes = "Bye"
        db.add(match)
        matches.append(match)
    return matches


def generate_schedule(db: Session, tournament_id: int, current_user_id: int) -> List[Match]:
    """Round robin: the full schedule at once. Swiss: the next round."""
    with tournament_guard(tournament_id), atomic(db):
        tournament = get_tournament_for_update(db, tournament_id)
        ensure_organizer(tournament, current_user_id)
        _ensure_schedulable(tournament)

        started = db.query(Match.id).filter(Match.tournament_id == tournament_id).first() is not None
        if tournament.format == TournamentFormat.ROUND_ROBIN or not started:
            if tournament.status != TournamentStatus.REGISTRATION_CLOSED:
                if started:
                    raise ConflictError("A schedule already exists for this tournament.")
                raise ValidationError(
                    f"Schedules are generated once registration is closed; tournament is {tournament.status.value}."
                )
        elif tournament.status != TournamentStatus.IN_PROGRESS:
            raise ValidationError(f"Rounds cannot be added while the tournament is {tournament.status.value}.")

        entries = seeded_entries(db, tournament_id)
        required = max(2, tournament.min_participants)
        if len(entries) < required:
            raise InvalidBracketSize(f"A schedule needs at least {required} confirmed entries; {len(entries)} available.")

        if tournament.format == TournamentFormat.ROUND_ROBIN:
            matches = _create_round_robin(db, tournament, entries)
        else:
            matches = _create_swiss_round(db, tournament, entries)
        tournament.status = TournamentStatus.IN_PROGRESS
        db.flush()

    logger.info(
        "schedule_generated",
        tournament_id=tournament_id,
        format=tournament.format.value,
        matches=len(matches),
        rounds=len({m.round for m in matches}),
    )
    return matches
