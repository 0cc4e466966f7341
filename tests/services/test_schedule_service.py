import itertools

import pytest

from courtside.core.errors import ConflictError, FormatNotSupported
from courtside.models.enums import MatchStatus, TournamentFormat, TournamentStatus
from courtside.models.tournament import Tournament
from courtside.schemas.match_schemas import MatchScoreUpdate
from courtside.services import bracket_service, schedule_service
from courtside.services.schedule_service import SwissEntry, round_robin_rounds, swiss_pairs


class TestRoundRobinRounds:

    @pytest.mark.parametrize("n", [2, 3, 4, 5, 8])
    def test_everyone_meets_once(self, n):
        rounds = round_robin_rounds(list(range(n)))
        games = [frozenset(pair) for pairs in rounds for pair in pairs]

        assert len(games) == n * (n - 1) // 2
        assert set(games) == {frozenset(pair) for pair in itertools.combinations(range(n), 2)}

    def test_round_count(self):
        assert len(round_robin_rounds(list(range(6)))) == 5
        assert len(round_robin_rounds(list(range(5)))) == 5

    def test_nobody_plays_twice_in_a_round(self):
        for pairs in round_robin_rounds(list(range(7))):
            players = [p for pair in pairs for p in pair]
            assert len(players) == len(set(players))


class TestSwissPairs:

    def test_pairs_top_down(self):
        entries = [SwissEntry(i, score, 0, i) for i, score in [(1, 6), (2, 3), (3, 3), (4, 0)]]
        pairs = swiss_pairs(entries, previous_pairs=set())
        assert [(p.entry_a, p.entry_b) for p in pairs] == [(1, 2), (3, 4)]

    def test_avoids_rematch(self):
        entries = [SwissEntry(i, 0, 0, i) for i in range(1, 5)]
        pairs = swiss_pairs(entries, previous_pairs={frozenset((1, 2))})
        assert (pairs[0].entry_a, pairs[0].entry_b) == (1, 3)

    def test_backtracks_to_avoid_a_forced_rematch(self):
        entries = [SwissEntry(i, 0, 0, i) for i in range(1, 5)]
        previous = {frozenset((1, 2)), frozenset((3, 4)), frozenset((2, 4))}

        pairs = swiss_pairs(entries, previous_pairs=previous)

        assert [(p.entry_a, p.entry_b) for p in pairs] == [(1, 4), (2, 3)]

    def test_accepts_rematch_when_unavoidable(self):
        entries = [SwissEntry(i, 0, 0, i) for i in range(1, 5)]
        previous = {frozenset(pair) for pair in itertools.combinations(range(1, 4), 2)}

        pairs = swiss_pairs(entries, previous_pairs=previous)

        assert [(p.entry_a, p.entry_b) for p in pairs] == [(1, 4), (2, 3)]

    def test_bye_goes_to_lowest_without_previous_bye(self):
        entries = [SwissEntry(i, 10 - i, 0, i) for i in range(1, 6)]
        pairs = swiss_pairs(entries, previous_pairs=set(), bye_history={5})
        bye = pairs[-1]
        assert bye.entry_b is None
        assert bye.entry_a == 4


class TestGenerateSchedule:

    def test_round_robin_schedule(self, db, organizer, make_tournament, enter_players):
        tournament = make_tournament(format=TournamentFormat.ROUND_ROBIN)
        enter_players(tournament, 5)

        matches = schedule_service.generate_schedule(db, tournament.id, organizer.id)

        assert len(matches) == 10
        assert len({m.round for m in matches}) == 5
        assert all(m.next_match_id is None for m in matches)
        assert db.get(Tournament, tournament.id).status == TournamentStatus.IN_PROGRESS

        with pytest.raises(ConflictError):
            schedule_service.generate_schedule(db, tournament.id, organizer.id)

    def test_round_robin_completes_after_last_match(self, db, organizer, make_tournament, enter_players):
        tournament = make_tournament(format=TournamentFormat.ROUND_ROBIN)
        enter_players(tournament, 3)
        matches = schedule_service.generate_schedule(db, tournament.id, organizer.id)

        for match in matches:
            bracket_service.record_match_score(
                db, match.id, MatchScoreUpdate(team1_score=2, team2_score=0), organizer.id
            )

        assert db.get(Tournament, tournament.id).status == TournamentStatus.COMPLETED

    def test_swiss_rounds(self, db, organizer, make_tournament, enter_players):
        tournament = make_tournament(format=TournamentFormat.SWISS_SYSTEM)
        enter_players(tournament, 5)

        first = schedule_service.generate_schedule(db, tournament.id, organizer.id)
        byes = [m for m in first if m.team2_id is None]
        assert len(first) == 3
        assert len(byes) == 1
        assert byes[0].status == MatchStatus.WALKOVER
        assert byes[0].winner_id == byes[0].team1_id

        with pytest.raises(ConflictError):
            schedule_service.generate_schedule(db, tournament.id, organizer.id)

        for match in first:
            if match.team2_id is not None:
                bracket_service.record_match_score(
                    db, match.id, MatchScoreUpdate(team1_score=2, team2_score=1), organizer.id
                )

        second = schedule_service.generate_schedule(db, tournament.id, organizer.id)
        first_pairs = {frozenset((m.team1_id, m.team2_id)) for m in first if m.team2_id is not None}
        second_pairs = {frozenset((m.team1_id, m.team2_id)) for m in second if m.team2_id is not None}
        second_bye = next(m for m in second if m.team2_id is None)

        assert {m.round for m in second} == {2}
        assert not first_pairs & second_pairs
        assert second_bye.team1_id != byes[0].team1_id

    def test_elimination_formats_are_not_scheduled(self, db, organizer, make_tournament, enter_players):
        tournament = make_tournament()
        enter_players(tournament, 4)

        with pytest.raises(FormatNotSupported):
            schedule_service.generate_schedule(db, tournament.id, organizer.id)
