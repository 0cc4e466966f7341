from collections import Counter

import pytest

from courtside.core.errors import DataIntegrityError, FormatNotSupported, InvalidBracketSize
from courtside.models.enums import TournamentFormat
from courtside.models.match import round_name
from courtside.services.bracket_builder import (
    ENTRY,
    build_bracket,
    build_double_elimination,
    build_single_elimination,
    calculate_bracket_size,
    calculate_byes,
    seed_order,
    single_elimination_round_number,
    validate_plan,
)


def entries(n):
    return list(range(101, 101 + n))


class TestSeeding:

    def test_seed_order_for_eight(self):
        assert seed_order(8) == [1, 8, 4, 5, 2, 7, 3, 6]

    def test_seed_order_keeps_top_seeds_apart(self):
        order = seed_order(16)
        half = len(order) // 2
        assert 1 in order[:half]
        assert 2 in order[half:]

    @pytest.mark.parametrize("n,size,byes", [(2, 2, 0), (3, 4, 1), (5, 8, 3), (8, 8, 0), (9, 16, 7)])
    def test_bracket_size_and_byes(self, n, size, byes):
        assert calculate_bracket_size(n) == size
        assert calculate_byes(n) == byes


class TestSingleElimination:

    @pytest.mark.parametrize("n", range(2, 34))
    def test_match_count_is_entries_minus_one(self, n):
        plan = build_bracket(entries(n), TournamentFormat.SINGLE_ELIMINATION)
        assert len(plan.nodes) == n - 1

    @pytest.mark.parametrize("n", [2, 3, 6, 8, 13, 32])
    def test_single_sink(self, n):
        plan = build_single_elimination(entries(n))
        sinks = [node for node in plan.nodes if node.winner_to is None]
        assert len(sinks) == 1
        assert sinks[0].round_number == -1

    def test_eight_entries_round_numbers(self):
        plan = build_single_elimination(entries(8))
        assert Counter(node.round_number for node in plan.nodes) == Counter([1, 1, 1, 1, -2, -2, -1])

    def test_two_entries_play_only_the_final(self):
        plan = build_single_elimination(entries(2))
        assert [node.round_number for node in plan.nodes] == [-1]
        assert single_elimination_round_number(1, 1) == -1

    def test_sixteen_entries_use_named_late_rounds(self):
        plan = build_single_elimination(entries(16))
        assert Counter(node.round_number for node in plan.nodes) == Counter({1: 8, -3: 4, -2: 2, -1: 1})

    def test_long_bracket_keeps_ordinals_before_quarterfinals(self):
        assert [single_elimination_round_number(r, 6) for r in range(1, 7)] == [1, 2, 3, -3, -2, -1]

    def test_byes_go_to_top_seeds(self):
        seeded = entries(6)
        plan = build_single_elimination(seeded)

        opening = [node for node in plan.nodes if node.round_number == 1]
        opening_entries = [node.entry_in(position) for node in opening for position in (1, 2)]
        assert sorted(opening_entries) == [seeded[2], seeded[3], seeded[4], seeded[5]]

        semifinals = [node for node in plan.nodes if node.round_number == -2]
        direct = {source.ref for node in semifinals for source in node.slots if source.kind == ENTRY}
        assert direct == {seeded[0], seeded[1]}

    def test_match_numbers_restart_per_round(self):
        plan = build_single_elimination(entries(8))
        numbers = sorted(node.match_number for node in plan.nodes if node.round_number == 1)
        assert numbers == [1, 2, 3, 4]

    def test_round_names(self):
        assert round_name(-1) == "Final"
        assert round_name(-2) == "Semifinal"
        assert round_name(-3) == "Quarterfinal"
        assert round_name(4) == "Round 4"


class TestDoubleElimination:

    @pytest.mark.parametrize("n", range(2, 18))
    def test_match_count_is_twice_entries_minus_two(self, n):
        plan = build_bracket(entries(n), TournamentFormat.DOUBLE_ELIMINATION)
        assert len(plan.nodes) == 2 * n - 2

    def test_eight_entries_layout(self):
        plan = build_double_elimination(entries(8))
        winners = [node for node in plan.nodes if not node.is_loser_bracket and not node.is_grand_final]
        losers = [node for node in plan.nodes if node.is_loser_bracket]

        assert Counter(node.round_number for node in winners) == Counter({1: 4, 2: 2, 3: 1})
        assert Counter(node.round_number for node in losers) == Counter({1: 2, 2: 2, 3: 1, 4: 1})
        assert all(node.loser_to is not None for node in winners)

    def test_grand_final_is_the_only_sink(self):
        plan = build_double_elimination(entries(6))
        assert plan.sink.is_grand_final
        assert plan.sink.round_number == -1
        assert not plan.sink.is_loser_bracket

    def test_first_round_losers_meet_in_losers_round_one(self):
        plan = build_double_elimination(entries(8))
        opening = [node for node in plan.nodes if not node.is_loser_bracket and node.round_number == 1]
        targets = {plan.node(node.loser_to[0]).side_round for node in opening}
        assert targets == {1}
        assert all(plan.node(node.loser_to[0]).is_loser_bracket for node in opening)

    def test_later_winners_losers_drop_to_major_rounds(self):
        plan = build_double_elimination(entries(8))
        for node in plan.nodes:
            if node.is_loser_bracket or node.is_grand_final or node.side_round == 1:
                continue
            target = plan.node(node.loser_to[0])
            assert target.side_round == 2 * node.side_round - 2

    def test_two_entries_meet_twice_at_most(self):
        plan = build_double_elimination(entries(2))
        assert len(plan.nodes) == 2
        opening, grand_final = plan.nodes
        assert opening.winner_to == (grand_final.index, 1)
        assert opening.loser_to == (grand_final.index, 2)


class TestValidation:

    def test_round_robin_is_not_bracketed(self):
        with pytest.raises(FormatNotSupported):
            build_bracket(entries(4), TournamentFormat.ROUND_ROBIN)

    def test_swiss_is_not_bracketed(self):
        with pytest.raises(FormatNotSupported):
            build_bracket(entries(4), TournamentFormat.SWISS_SYSTEM)

    def test_single_entry_is_rejected(self):
        with pytest.raises(InvalidBracketSize):
            build_bracket(entries(1), TournamentFormat.SINGLE_ELIMINATION)

    def test_min_participants_is_enforced(self):
        with pytest.raises(InvalidBracketSize):
            build_bracket(entries(3), TournamentFormat.SINGLE_ELIMINATION, min_participants=4)

    def test_duplicate_entries_are_rejected(self):
        with pytest.raises(DataIntegrityError):
            build_bracket([1, 2, 2, 3], TournamentFormat.SINGLE_ELIMINATION)

    def test_backward_edge_fails_validation(self):
        plan = build_single_elimination(entries(4))
        final = plan.sink
        opening = next(node for node in plan.nodes if node.round_number == 1)
        final.winner_to = (opening.index, 1)

        with pytest.raises(DataIntegrityError) as exc_info:
            validate_plan(plan)
        assert exc_info.value.errors
