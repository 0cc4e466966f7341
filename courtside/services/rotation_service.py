"""
American format: every round players are regrouped into 2v2 pairings.

Players are ranked by the current standings (registration order before the
first round). If the active count is not a multiple of four, the surplus
rests. The rest are cut into groups of four in rank order; players are swapped
between groups while that avoids repeating a teammate. Each group then uses the
team split that repeats the fewest earlier teammates and then opponents.
"""
import datetime
import itertools
import json
from collections import Counter
from dataclasses import dataclass, field
from typing import FrozenSet, List, Optional, Sequence, Tuple

import structlog
from sqlalchemy.orm import Session

from courtside.core.config import get_settings
from courtside.core.database import atomic
from courtside.core.errors import ConflictError, FormatNotSupported, InvalidBracketSize, NotFoundError, ValidationError
from courtside.core.locks import tournament_guard
from courtside.models.american import (
    AmericanTournamentPairing,
    AmericanTournamentRound,
    AmericanTournamentStanding,
)
from courtside.models.enums import MatchStatus, RoundStatus, TournamentStatus, TournamentType
from courtside.models.tournament import Tournament
from courtside.schemas import american_schemas
from courtside.services import standings_service
from courtside.services.registration_service import seeded_entries
from courtside.services.tournament_service import ensure_organizer, get_tournament_for_update

logger = structlog.get_logger(__name__)

PLAYERS_PER_PAIRING = 4

# Positions within a ranked group of four; earlier splits win ties.
TEAM_SPLITS: Tuple[Tuple[Tuple[int, int], Tuple[int, int]], ...] = (
    ((0, 3), (1, 2)),
    ((0, 2), (1, 3)),
    ((0, 1), (2, 3)),
)


@dataclass
class RotationHistory:
    teammates: Counter = field(default_factory=Counter)
    opponents: Counter = field(default_factory=Counter)
    rests: Counter = field(default_factory=Counter)

    def record_pairing(self, team_a: Sequence[int], team_b: Sequence[int]) -> None:
        self.teammates[frozenset(team_a)] += 1
        self.teammates[frozenset(team_b)] += 1
        for a, b in itertools.product(team_a, team_b):
            self.opponents[frozenset((a, b))] += 1

    def record_rest(self, player_id: int) -> None:
        self.rests[player_id] += 1


@dataclass(frozen=True)
class PlannedPairing:
    court: str
    team_a: Tuple[int, int]
    team_b: Tuple[int, int]


@dataclass
class RoundPlan:
    pairings: List[PlannedPairing]
    resting: List[int]


def _pair(a: int, b: int) -> FrozenSet[int]:
    return frozenset((a, b))


def choose_resting(ranked_players: Sequence[int], history: RotationHistory) -> List[int]:
    """Picks ``len % 4`` players: those who rested least, lowest ranked first."""
    surplus = len(ranked_players) % PLAYERS_PER_PAIRING
    if not surplus:
        return []
    position = {player_id: index for index, player_id in enumerate(ranked_players)}
    candidates = sorted(ranked_players, key=lambda p: (history.rests[p], -position[p]))
    return candidates[:surplus]


def split_cost(group: Sequence[int], split, history: RotationHistory) -> Tuple[int, int]:
    (a1, a2), (b1, b2) = split
    team_a = (group[a1], group[a2])
    team_b = (group[b1], group[b2])
    repeated_teammates = history.teammates[frozenset(team_a)] + history.teammates[frozenset(team_b)]
    repeated_opponents = sum(history.opponents[_pair(a, b)] for a, b in itertools.product(team_a, team_b))
    return repeated_teammates, repeated_opponents


def best_split(group: Sequence[int], history: RotationHistory) -> Tuple[Tuple[int, int], Tuple[int, int]]:
    _, index = min((split_cost(group, split, history), index) for index, split in enumerate(TEAM_SPLITS))
    (a1, a2), (b1, b2) = TEAM_SPLITS[index]
    return (group[a1], group[a2]), (group[b1], group[b2])


def repeated_teammates(group: Sequence[int], history: RotationHistory) -> int:
    return min(split_cost(group, split, history)[0] for split in TEAM_SPLITS)


def regroup(groups: List[List[int]], ranked_players: Sequence[int], history: RotationHistory) -> List[List[int]]:
    """
    Swaps single players between groups, nearest groups first, while a swap
    lowers the repeated teammates of the two groups involved. Groups stay in
    rank order internally.
    """
    position = {player_id: index for index, player_id in enumerate(ranked_players)}
    groups = [sorted(group, key=position.__getitem__) for group in groups]
    improved = True
    while improved:
        improved = False
        for i in range(len(groups)):
            if not repeated_teammates(groups[i], history):
                continue
            for j in sorted((j for j in range(len(groups)) if j != i), key=lambda j: abs(j - i)):
                before = repeated_teammates(groups[i], history) + repeated_teammates(groups[j], history)
                swap = None
                for a, b in itertools.product(groups[i], groups[j]):
                    left = sorted([p for p in groups[i] if p != a] + [b], key=position.__getitem__)
                    right = sorted([p for p in groups[j] if p != b] + [a], key=position.__getitem__)
                    if repeated_teammates(left, history) + repeated_teammates(right, history) < before:
                        swap = left, right
                        break
                if swap is not None:
                    groups[i], groups[j] = swap
                    improved = True
                    break
    return groups


def court_label(index: int, courts: Optional[Sequence[str]] = None) -> str:
    if courts:
        return courts[index % len(courts)]
    return f"Court {index + 1}"


def plan_round(
    ranked_players: Sequence[int],
    history: Optional[RotationHistory] = None,
    courts: Optional[Sequence[str]] = None,
) -> RoundPlan:
    history = history or RotationHistory()
    if len(set(ranked_players)) != len(ranked_players):
        raise ValidationError("A player can appear only once in a round.")
    if len(ranked_players) < PLAYERS_PER_PAIRING:
        raise InvalidBracketSize(
            f"An American round needs at least {PLAYERS_PER_PAIRING} active players; {len(ranked_players)} available."
        )

    resting = choose_resting(ranked_players, history)
    active = [player_id for player_id in ranked_players if player_id not in resting]

    groups = [active[index:index + PLAYERS_PER_PAIRING] for index in range(0, len(active), PLAYERS_PER_PAIRING)]
    groups = regroup(groups, active, history)

    pairings: List[PlannedPairing] = []
    for group in groups:
        team_a, team_b = best_split(group, history)
        pairings.append(PlannedPairing(court=court_label(len(pairings), courts), team_a=team_a, team_b=team_b))
    return RoundPlan(pairings=pairings, resting=resting)


def _rounds(db: Session, tournament_id: int) -> List[AmericanTournamentRound]:
    return (
        db.query(AmericanTournamentRound)
        .filter(AmericanTournamentRound.tournament_id == tournament_id)
        .order_by(AmericanTournamentRound.round_number)
        .all()
    )


def list_rounds(db: Session, tournament_id: int) -> List[AmericanTournamentRound]:
    return _rounds(db, tournament_id)


def _history(rounds: Sequence[AmericanTournamentRound], players: Sequence[int]) -> RotationHistory:
    history = RotationHistory()
    for played_round in rounds:
        playing = set()
        for pairing in played_round.pairings:
            history.record_pairing(pairing.team_a, pairing.team_b)
            playing.update(pairing.player_ids)
        for player_id in players:
            if player_id not in playing:
                history.record_rest(player_id)
    return history


def _ranked_players(db: Session, tournament_id: int, players: List[int], first_round: bool) -> List[int]:
    if first_round:
        return players
    rows = (
        db.query(AmericanTournamentStanding)
        .filter(AmericanTournamentStanding.tournament_id == tournament_id)
        .all()
    )
    by_player = {row.player_id: row for row in rows}
    registration_order = {player_id: index for index, player_id in enumerate(players)}
    lines = [by_player.get(p) or standings_service.StandingLine(player_id=p) for p in players]
    ranked = sorted(lines, key=lambda line: standings_service.ranking_key(line)[:-1] + (registration_order[line.player_id],))
    return [line.player_id for line in ranked]


def _ensure_american(tournament: Tournament) -> None:
    if tournament.tournament_type != TournamentType.AMERICAN:
        raise FormatNotSupported("Rotating rounds are only played in American tournaments.")


def create_next_round(
    db: Session, tournament_id: int, current_user_id: int, courts: Optional[List[str]] = None
) -> AmericanTournamentRound:
    with tournament_guard(tournament_id), atomic(db):
        tournament = get_tournament_for_update(db, tournament_id)
        ensure_organizer(tournament, current_user_id)
        _ensure_american(tournament)

        rounds = _rounds(db, tournament_id)
        if rounds:
            if tournament.status != TournamentStatus.IN_PROGRESS:
                raise ValidationError(f"Rounds cannot be added while the tournament is {tournament.status.value}.")
            previous = rounds[-1]
            if previous.status != RoundStatus.COMPLETED:
                raise ConflictError(f"Round {previous.round_number} is not completed yet.")
        elif tournament.status != TournamentStatus.REGISTRATION_CLOSED:
            raise ValidationError(
                f"The first round starts once registration is closed; tournament is {tournament.status.value}."
            )

        players = [entry.player1_id for entry in seeded_entries(db, tournament_id)]
        if len(players) < max(PLAYERS_PER_PAIRING, tournament.min_participants):
            raise InvalidBracketSize(
                f"An American round needs at least {max(PLAYERS_PER_PAIRING, tournament.min_participants)} "
                f"active players; {len(players)} available."
            )

        ranked = _ranked_players(db, tournament_id, players, first_round=not rounds)
        plan = plan_round(ranked, _history(rounds, players), courts or get_settings().court_labels)

        now = datetime.datetime.utcnow()
        new_round = AmericanTournamentRound(
            tournament_id=tournament_id,
            round_number=len(rounds) + 1,
            status=RoundStatus.IN_PROGRESS,
            start_time=now,
        )
        for planned in plan.pairings:
            new_round.pairings.append(
                AmericanTournamentPairing(
                    court=planned.court,
                    team_a_player1_id=planned.team_a[0],
                    team_a_player2_id=planned.team_a[1],
                    team_b_player1_id=planned.team_b[0],
                    team_b_player2_id=planned.team_b[1],
                    status=MatchStatus.SCHEDULED,
                    standings_applied=False,
                )
            )
        db.add(new_round)
        if tournament.status == TournamentStatus.REGISTRATION_CLOSED:
            tournament.status = TournamentStatus.IN_PROGRESS
        db.flush()

    logger.info(
        "american_round_created",
        tournament_id=tournament_id,
        round_number=new_round.round_number,
        pairings=len(plan.pairings),
        resting=plan.resting,
    )
    return new_round


def get_pairing(db: Session, pairing_id: int, for_update: bool = False) -> AmericanTournamentPairing:
    query = db.query(AmericanTournamentPairing).filter(AmericanTournamentPairing.id == pairing_id)
    if for_update:
        query = query.with_for_update().populate_existing()
    pairing = query.first()
    if pairing is None:
        raise NotFoundError(f"Pairing {pairing_id} not found.")
    return pairing


def record_pairing_score(
    db: Session, pairing_id: int, score: american_schemas.PairingScoreUpdate, current_user_id: int
) -> AmericanTournamentPairing:
    pairing = get_pairing(db, pairing_id)
    tournament_id = pairing.round.tournament_id

    with tournament_guard(tournament_id), atomic(db):
        tournament = get_tournament_for_update(db, tournament_id)
        ensure_organizer(tournament, current_user_id)
        if tournament.status != TournamentStatus.IN_PROGRESS and not (
            tournament.status == TournamentStatus.COMPLETED and score.correction
        ):
            raise ValidationError(f"Results cannot be recorded while the tournament is {tournament.status.value}.")
        pairing = get_pairing(db, pairing_id, for_update=True)

        already_scored = pairing.status == MatchStatus.COMPLETED
        if already_scored and not score.correction:
            raise ConflictError("Pairing already has a result; resubmit with correction=true to change it.")

        rule = standings_service.ScoringRule.from_settings()
        if pairing.standings_applied:
            standings_service.revert_contest(db, tournament_id, pairing, standings_service.pairing_contest(pairing), rule)

        now = datetime.datetime.utcnow()
        pairing.team_a_score = score.team_a_score
        pairing.team_b_score = score.team_b_score
        if score.set_scores is not None:
            pairing.set_scores = json.dumps([s.model_dump() for s in score.set_scores])
        pairing.status = MatchStatus.COMPLETED
        pairing.end_time = pairing.end_time or now
        standings_service.apply_contest(db, tournament_id, pairing, standings_service.pairing_contest(pairing), rule)

        current_round = pairing.round
        if all(p.status == MatchStatus.COMPLETED for p in current_round.pairings):
            if current_round.status != RoundStatus.COMPLETED:
                current_round.status = RoundStatus.COMPLETED
                current_round.end_time = now
                logger.info(
                    "american_round_completed",
                    tournament_id=tournament_id,
                    round_number=current_round.round_number,
                )

    logger.info(
        "pairing_scored",
        tournament_id=tournament_id,
        pairing_id=pairing_id,
        team_a_score=score.team_a_score,
        team_b_score=score.team_b_score,
        winner=pairing.winner,
        correction=already_scored,
    )
    return pairing
