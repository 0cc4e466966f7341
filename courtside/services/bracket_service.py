import datetime
import json
from typing import Dict, List, Optional

import structlog
from sqlalchemy.orm import Session

from courtside.core.database import atomic
from courtside.core.errors import ConflictError, FormatNotSupported, NotFoundError, ValidationError
from courtside.core.locks import tournament_guard
from courtside.models.enums import (
    ELIMINATION_FORMATS,
    MatchStatus,
    TournamentFormat,
    TournamentStatus,
    TournamentType,
)
from courtside.models.match import Match
from courtside.models.tournament import Tournament
from courtside.schemas import match_schemas
from courtside.services import standings_service
from courtside.services.bracket_builder import BracketPlan, build_bracket
from courtside.services.registration_service import seeded_entries
from courtside.services.tournament_service import ensure_organizer, get_tournament_for_update

logger = structlog.get_logger(__name__)

DECIDED_STATUSES = (MatchStatus.COMPLETED, MatchStatus.WALKOVER)


def get_match(db: Session, match_id: int, for_update: bool = False) -> Match:
    query = db.query(Match).filter(Match.id == match_id)
    if for_update:
        # Reload under the tournament lock so a result committed by another writer is seen.
        query = query.with_for_update().populate_existing()
    match = query.first()
    if match is None:
        raise NotFoundError(f"Match {match_id} not found.")
    return match


def list_matches(db: Session, tournament_id: int) -> List[Match]:
    return (
        db.query(Match)
        .filter(Match.tournament_id == tournament_id)
        .order_by(Match.is_loser_bracket, Match.id)
        .all()
    )


def _ensure_bracket_format(tournament: Tournament) -> None:
    if tournament.tournament_type == TournamentType.AMERICAN:
        raise FormatNotSupported("American tournaments are played in rotating rounds, not brackets.")
    if tournament.format not in ELIMINATION_FORMATS:
        raise FormatNotSupported(
            f"{tournament.format.value} tournaments are scheduled in rounds; use the schedule endpoint."
        )


def _persist_plan(db: Session, tournament: Tournament, plan: BracketPlan) -> List[Match]:
    rows: Dict[int, Match] = {}
    for node in plan.nodes:
        match = Match(
            tournament_id=tournament.id,
            round=node.round_number,
            match_number=node.match_number,
            is_loser_bracket=node.is_loser_bracket,
            status=MatchStatus.SCHEDULED,
            team1_id=node.entry_in(1),
            team2_id=node.entry_in(2),
            standings_applied=False,
        )
        db.add(match)
        rows[node.index] = match
    db.flush()  # ids are needed before pointers can be set

    for node in plan.nodes:
        match = rows[node.index]
        if node.winner_to is not None:
            target, slot = node.winner_to
            match.next_match_id = rows[target].id
            match.next_match_slot = slot
        if node.loser_to is not None:
            target, slot = node.loser_to
            match.next_match_id_loser = rows[target].id
            match.next_match_loser_slot = slot
    db.flush()
    return [rows[node.index] for node in plan.nodes]


def generate_bracket(db: Session, tournament_id: int, current_user_id: int) -> List[Match]:
    """Builds and stores the elimination bracket from the seeded entries, then starts the tournament."""
    with tournament_guard(tournament_id), atomic(db):
        tournament = get_tournament_for_update(db, tournament_id)
        ensure_organizer(tournament, current_user_id)
        _ensure_bracket_format(tournament)

        existing = db.query(Match.id).filter(Match.tournament_id == tournament_id).first()
        if existing is not None:
            raise ConflictError("A bracket already exists for this tournament.")
        if tournament.status != TournamentStatus.REGISTRATION_CLOSED:
            raise ValidationError(
                f"Brackets are generated once registration is closed; tournament is {tournament.status.value}."
            )

        entries = seeded_entries(db, tournament_id)
        plan = build_bracket([entry.id for entry in entries], tournament.format, tournament.min_participants)
        matches = _persist_plan(db, tournament, plan)
        tournament.status = TournamentStatus.IN_PROGRESS

    logger.info(
        "bracket_generated",
        tournament_id=tournament_id,
        format=plan.format.value,
        entries=len(entries),
        bracket_size=plan.bracket_size,
        matches=len(matches),
    )
    return matches


def _ensure_scorable(tournament: Tournament, correction: bool) -> None:
    if tournament.status == TournamentStatus.IN_PROGRESS:
        return
    if tournament.status == TournamentStatus.COMPLETED and correction:
        return
    raise ValidationError(f"Results cannot be recorded while the tournament is {tournament.status.value}.")


def _downstream(db: Session, match: Match) -> List[Match]:
    ids = [mid for mid in (match.next_match_id, match.next_match_id_loser) if mid is not None]
    if not ids:
        return []
    return db.query(Match).filter(Match.id.in_(ids)).all()


def _ensure_downstream_open(db: Session, match: Match) -> None:
    for downstream in _downstream(db, match):
        if downstream.status in DECIDED_STATUSES:
            raise ConflictError(
                f"Cannot change the winner of match {match.id}: match {downstream.id} already has a result."
            )


def _advance(db: Session, match: Match) -> None:
    """Writes the winner (and, in double elimination, the loser) into the next matches."""
    if match.next_match_id is not None:
        get_match(db, match.next_match_id).set_slot(match.next_match_slot, match.winner_id)
    if match.next_match_id_loser is not None:
        get_match(db, match.next_match_id_loser).set_slot(match.next_match_loser_slot, match.loser_id)


def _maybe_complete_tournament(db: Session, tournament: Tournament, match: Match) -> None:
    if tournament.status != TournamentStatus.IN_PROGRESS:
        return
    if tournament.format in ELIMINATION_FORMATS:
        finished = match.next_match_id is None
    elif tournament.format == TournamentFormat.ROUND_ROBIN:
        finished = (
            db.query(Match.id)
            .filter(Match.tournament_id == tournament.id, Match.status.notin_(list(DECIDED_STATUSES)))
            .first()
            is None
        )
    else:
        # Swiss events end when the organizer closes them.
        finished = False
    if finished:
        tournament.status = TournamentStatus.COMPLETED
        tournament.end_date = tournament.end_date or datetime.datetime.utcnow()
        logger.info("tournament_completed", tournament_id=tournament.id, final_match_id=match.id)


def record_match_score(
    db: Session, match_id: int, score: match_schemas.MatchScoreUpdate, current_user_id: int
) -> Match:
    match = get_match(db, match_id)
    tournament_id = match.tournament_id

    with tournament_guard(tournament_id), atomic(db):
        tournament = get_tournament_for_update(db, tournament_id)
        ensure_organizer(tournament, current_user_id)
        _ensure_scorable(tournament, score.correction)
        match = get_match(db, match_id, for_update=True)

        if not match.is_ready:
            raise ValidationError("Both teams must be assigned before a result can be recorded.")
        if match.status == MatchStatus.CANCELLED:
            raise ValidationError("Cancelled matches cannot be scored.")
        if score.team1_score == score.team2_score:
            raise ValidationError("A match needs a winner; equal set counts are not allowed.")

        already_decided = match.status in DECIDED_STATUSES
        if already_decided and not score.correction:
            raise ConflictError("Match already has a result; resubmit with correction=true to change it.")

        winner_id = match.team1_id if score.team1_score > score.team2_score else match.team2_id
        if already_decided and winner_id != match.winner_id:
            _ensure_downstream_open(db, match)

        rule = standings_service.ScoringRule.from_settings()
        if match.standings_applied:
            standings_service.revert_contest(db, tournament_id, match, standings_service.match_contest(match), rule)

        match.team1_score = score.team1_score
        match.team2_score = score.team2_score
        if score.set_scores is not None:
            match.set_scores = json.dumps([s.model_dump() for s in score.set_scores])
        if score.notes is not None:
            match.notes = score.notes
        match.winner_id = winner_id
        match.status = MatchStatus.COMPLETED
        match.end_time = match.end_time or datetime.datetime.utcnow()

        standings_service.apply_contest(db, tournament_id, match, standings_service.match_contest(match), rule)
        _advance(db, match)
        db.flush()
        _maybe_complete_tournament(db, tournament, match)

    logger.info(
        "match_scored",
        tournament_id=tournament_id,
        match_id=match_id,
        team1_score=score.team1_score,
        team2_score=score.team2_score,
        winner_id=winner_id,
        correction=already_decided,
    )
    return match


def walkover(db: Session, match_id: int, payload: match_schemas.WalkoverUpdate, current_user_id: int) -> Match:
    """Completes a match without a score; the winner advances, standings are untouched."""
    match = get_match(db, match_id)
    tournament_id = match.tournament_id

    with tournament_guard(tournament_id), atomic(db):
        tournament = get_tournament_for_update(db, tournament_id)
        ensure_organizer(tournament, current_user_id)
        _ensure_scorable(tournament, correction=False)
        match = get_match(db, match_id, for_update=True)

        if match.status in DECIDED_STATUSES:
            raise ConflictError("Match already has a result.")
        if not match.is_ready:
            raise ValidationError("Both teams must be assigned before a walkover can be awarded.")
        if payload.winner_id not in (match.team1_id, match.team2_id):
            raise ValidationError(f"Registration {payload.winner_id} is not playing in match {match_id}.")

        match.winner_id = payload.winner_id
        match.status = MatchStatus.WALKOVER
        match.notes = payload.notes or match.notes
        match.end_time = datetime.datetime.utcnow()
        _advance(db, match)
        db.flush()
        _maybe_complete_tournament(db, tournament, match)

    logger.info("match_walkover", tournament_id=tournament_id, match_id=match_id, winner_id=payload.winner_id)
    return match


def check_bracket(matches: List[Match], expect_single_sink: bool = True) -> List[str]:
    """Integrity report for stored matches: dangling pointers, cycles, sink count."""
    problems: List[str] = []
    if not matches:
        return problems

    by_id = {match.id: match for match in matches}
    edges: Dict[int, List[int]] = {match.id: [] for match in matches}
    for match in matches:
        for label, target_id, slot in (
            ("next_match_id", match.next_match_id, match.next_match_slot),
            ("next_match_id_loser", match.next_match_id_loser, match.next_match_loser_slot),
        ):
            if target_id is None:
                continue
            if target_id not in by_id:
                problems.append(f"Match {match.id} {label} points to unknown match {target_id}.")
                continue
            if slot not in (1, 2):
                problems.append(f"Match {match.id} {label} has invalid slot {slot!r}.")
            edges[match.id].append(target_id)

    if expect_single_sink:
        sinks = [match.id for match in matches if match.next_match_id is None]
        if len(sinks) != 1:
            problems.append(f"Expected exactly one final match, found {len(sinks)}.")

    # Iterative three-colour DFS.
    state: Dict[int, int] = {}
    for start in edges:
        if state.get(start):
            continue
        stack = [(start, iter(edges[start]))]
        state[start] = 1
        while stack:
            node, children = stack[-1]
            child: Optional[int] = next(children, None)
            if child is None:
                state[node] = 2
                stack.pop()
            elif state.get(child) == 1:
                problems.append(f"Cycle detected through match {child}.")
            elif not state.get(child):
                state[child] = 1
                stack.append((child, iter(edges[child])))
    return problems


def get_bracket(db: Session, tournament_id: int) -> Dict[str, object]:
    tournament = db.query(Tournament).filter(Tournament.id == tournament_id).first()
    if tournament is None:
        raise NotFoundError(f"Tournament {tournament_id} not found.")
    matches = list_matches(db, tournament_id)
    problems = check_bracket(matches, expect_single_sink=tournament.format in ELIMINATION_FORMATS)
    if problems:
        logger.error("bracket_integrity_failed", tournament_id=tournament_id, problems=problems)
    return {"tournament_id": tournament_id, "matches": matches, "problems": problems}
