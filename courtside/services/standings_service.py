"""
Per-player standings.

Every completed contest (an elimination or schedule match, or an American
pairing) is folded into one line per player. A contest is keyed as
``match:{id}`` or ``pairing:{id}``; the in-memory aggregator skips keys it has
already seen and persisted contests carry ``standings_applied`` so a result is
never counted twice. Corrections reverse the old contribution first.
"""
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Set, Tuple

import structlog
from sqlalchemy.orm import Session

from courtside.core.config import Settings, get_settings
from courtside.core.database import atomic
from courtside.core.locks import tournament_guard
from courtside.models.american import (
    AmericanTournamentPairing,
    AmericanTournamentRound,
    AmericanTournamentStanding,
    pairing_winner,
    win_rate,
)
from courtside.models.enums import MatchStatus
from courtside.models.match import Match
from courtside.services.tournament_service import ensure_organizer, get_tournament_for_update

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class ScoringRule:
    points_per_win: int = 3
    points_per_loss: int = 0
    points_per_set: int = 0

    @classmethod
    def from_settings(cls, config: Optional[Settings] = None) -> "ScoringRule":
        config = config or get_settings()
        return cls(
            points_per_win=config.POINTS_PER_WIN,
            points_per_loss=config.POINTS_PER_LOSS,
            points_per_set=config.POINTS_PER_SET,
        )


@dataclass(frozen=True)
class ContestResult:
    key: str
    side_a: Tuple[int, ...]
    side_b: Tuple[int, ...]
    sets_a: int
    sets_b: int

    @property
    def winner(self) -> Optional[str]:
        return pairing_winner(self.sets_a, self.sets_b)


@dataclass
class StandingDelta:
    matches_won: int = 0
    matches_lost: int = 0
    sets_won: int = 0
    sets_lost: int = 0
    total_points: int = 0


@dataclass
class StandingLine:
    player_id: int
    total_points: int = 0
    matches_won: int = 0
    matches_lost: int = 0
    sets_won: int = 0
    sets_lost: int = 0

    @property
    def matches_played(self) -> int:
        return self.matches_won + self.matches_lost

    @property
    def win_rate(self) -> float:
        return win_rate(self.matches_won, self.matches_lost)

    @property
    def set_difference(self) -> int:
        return self.sets_won - self.sets_lost


def contest_deltas(result: ContestResult, rule: ScoringRule, sign: int = 1) -> Dict[int, StandingDelta]:
    """What one contest adds to (sign=1) or removes from (sign=-1) each player's line."""
    winner = result.winner
    if winner is None and sign > 0:
        # Only American pairings can end level; sets still count.
        logger.warning("standings_pairing_tied", contest=result.key, sets=result.sets_a)

    deltas: Dict[int, StandingDelta] = {}
    for label, players, own_sets, other_sets in (
        ("A", result.side_a, result.sets_a, result.sets_b),
        ("B", result.side_b, result.sets_b, result.sets_a),
    ):
        won = 1 if winner == label else 0
        lost = 1 if winner is not None and winner != label else 0
        points = rule.points_per_win * won + rule.points_per_loss * lost + rule.points_per_set * own_sets
        for player_id in players:
            delta = deltas.setdefault(player_id, StandingDelta())
            delta.matches_won += sign * won
            delta.matches_lost += sign * lost
            delta.sets_won += sign * own_sets
            delta.sets_lost += sign * other_sets
            delta.total_points += sign * points
    return deltas


def _add(line, delta: StandingDelta) -> None:
    line.matches_won += delta.matches_won
    line.matches_lost += delta.matches_lost
    line.sets_won += delta.sets_won
    line.sets_lost += delta.sets_lost
    line.total_points += delta.total_points


def ranking_key(line) -> tuple:
    return (-line.total_points, -line.set_difference, -line.sets_won, line.player_id)


def rank_standings(lines: Iterable) -> list:
    """Points, then set difference, then sets won, then player id."""
    return sorted(lines, key=ranking_key)


class StandingsAggregator:
    def __init__(self, rule: Optional[ScoringRule] = None):
        self.rule = rule or ScoringRule()
        self.lines: Dict[int, StandingLine] = {}
        self._applied: Dict[str, ContestResult] = {}

    @property
    def applied_keys(self) -> Set[str]:
        return set(self._applied)

    def apply(self, result: ContestResult) -> bool:
        if result.key in self._applied:
            return False
        self._fold(result, 1)
        self._applied[result.key] = result
        return True

    def revert(self, key: str) -> bool:
        result = self._applied.pop(key, None)
        if result is None:
            return False
        self._fold(result, -1)
        return True

    def replace(self, result: ContestResult) -> None:
        self.revert(result.key)
        self.apply(result)

    def line(self, player_id: int) -> StandingLine:
        return self.lines.setdefault(player_id, StandingLine(player_id=player_id))

    def ranked(self) -> List[StandingLine]:
        return rank_standings(self.lines.values())

    def _fold(self, result: ContestResult, sign: int) -> None:
        for player_id, delta in contest_deltas(result, self.rule, sign).items():
            _add(self.line(player_id), delta)


def match_contest(match: Match) -> ContestResult:
    return ContestResult(
        key=f"match:{match.id}",
        side_a=tuple(match.team1.player_ids),
        side_b=tuple(match.team2.player_ids),
        sets_a=match.team1_score,
        sets_b=match.team2_score,
    )


def pairing_contest(pairing: AmericanTournamentPairing) -> ContestResult:
    return ContestResult(
        key=f"pairing:{pairing.id}",
        side_a=tuple(pairing.team_a),
        side_b=tuple(pairing.team_b),
        sets_a=pairing.team_a_score,
        sets_b=pairing.team_b_score,
    )


def _standing_row(db: Session, tournament_id: int, player_id: int) -> AmericanTournamentStanding:
    row = (
        db.query(AmericanTournamentStanding)
        .filter(
            AmericanTournamentStanding.tournament_id == tournament_id,
            AmericanTournamentStanding.player_id == player_id,
        )
        .first()
    )
    if row is None:
        row = AmericanTournamentStanding(
            tournament_id=tournament_id,
            player_id=player_id,
            total_points=0,
            matches_won=0,
            matches_lost=0,
            sets_won=0,
            sets_lost=0,
        )
        db.add(row)
        db.flush()
    return row


def _fold_rows(db: Session, tournament_id: int, result: ContestResult, rule: ScoringRule, sign: int) -> None:
    for player_id, delta in contest_deltas(result, rule, sign).items():
        _add(_standing_row(db, tournament_id, player_id), delta)


def apply_contest(db: Session, tournament_id: int, contest, result: ContestResult, rule: Optional[ScoringRule] = None) -> bool:
    """Folds a completed match or pairing once; the caller owns the transaction."""
    if contest.standings_applied:
        logger.debug("standings_already_applied", contest=result.key)
        return False
    _fold_rows(db, tournament_id, result, rule or ScoringRule.from_settings(), 1)
    contest.standings_applied = True
    return True


def revert_contest(db: Session, tournament_id: int, contest, result: ContestResult, rule: Optional[ScoringRule] = None) -> bool:
    """Removes a previously folded result, e.g. before a correction is applied."""
    if not contest.standings_applied:
        return False
    _fold_rows(db, tournament_id, result, rule or ScoringRule.from_settings(), -1)
    contest.standings_applied = False
    return True


def list_standings(db: Session, tournament_id: int) -> List[AmericanTournamentStanding]:
    rows = (
        db.query(AmericanTournamentStanding)
        .filter(AmericanTournamentStanding.tournament_id == tournament_id)
        .all()
    )
    return rank_standings(rows)


def _scored_matches(db: Session, tournament_id: int) -> List[Match]:
    return (
        db.query(Match)
        .filter(
            Match.tournament_id == tournament_id,
            Match.status == MatchStatus.COMPLETED,
            Match.team1_score.isnot(None),
            Match.team2_score.isnot(None),
        )
        .order_by(Match.id)
        .all()
    )


def _scored_pairings(db: Session, tournament_id: int) -> List[AmericanTournamentPairing]:
    return (
        db.query(AmericanTournamentPairing)
        .join(AmericanTournamentRound, AmericanTournamentPairing.round_id == AmericanTournamentRound.id)
        .filter(
            AmericanTournamentRound.tournament_id == tournament_id,
            AmericanTournamentPairing.status == MatchStatus.COMPLETED,
            AmericanTournamentPairing.team_a_score.isnot(None),
            AmericanTournamentPairing.team_b_score.isnot(None),
        )
        .order_by(AmericanTournamentPairing.id)
        .all()
    )


def rebuild_standings(
    db: Session, tournament_id: int, current_user_id: int, rule: Optional[ScoringRule] = None
) -> List[AmericanTournamentStanding]:
    """Recomputes every standing row of the tournament from its completed contests."""
    rule = rule or ScoringRule.from_settings()
    with tournament_guard(tournament_id), atomic(db):
        tournament = get_tournament_for_update(db, tournament_id)
        ensure_organizer(tournament, current_user_id)

        aggregator = StandingsAggregator(rule)
        contests = [(m, match_contest(m)) for m in _scored_matches(db, tournament_id)]
        contests += [(p, pairing_contest(p)) for p in _scored_pairings(db, tournament_id)]
        for contest, result in contests:
            aggregator.apply(result)
            contest.standings_applied = True

        db.query(AmericanTournamentStanding).filter(
            AmericanTournamentStanding.tournament_id == tournament_id
        ).delete(synchronize_session="fetch")
        for line in aggregator.ranked():
            db.add(
                AmericanTournamentStanding(
                    tournament_id=tournament_id,
                    player_id=line.player_id,
                    total_points=line.total_points,
                    matches_won=line.matches_won,
                    matches_lost=line.matches_lost,
                    sets_won=line.sets_won,
                    sets_lost=line.sets_lost,
                )
            )

    logger.info("standings_rebuilt", tournament_id=tournament_id, contests=len(contests), players=len(aggregator.lines))
    return list_standings(db, tournament_id)
