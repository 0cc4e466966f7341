"""
Elimination bracket construction.

The bracket is built as an arena: a flat list of nodes whose edges are
``(node index, slot)`` pairs. Nothing here touches the database; the bracket
service persists a validated plan in one transaction.

Byes never become matches. The full power-of-two bracket is laid out first and
then pruned: a node with a single real source is removed and that source is
routed to the node's destination, a node with no sources is removed and its
destination loses a source. This keeps single elimination at N - 1 matches and
double elimination at 2N - 2.
"""
import math
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

from courtside.core.errors import DataIntegrityError, FormatNotSupported, InvalidBracketSize
from courtside.models.enums import TournamentFormat
from courtside.models.match import FINAL_ROUND

ENTRY = "entry"
WINNER = "winner"
LOSER = "loser"

Edge = Tuple[int, int]  # (target node index, slot 1 or 2)


@dataclass(frozen=True)
class SlotSource:
    kind: str  # ENTRY, WINNER or LOSER
    ref: int  # registration id for ENTRY, node index otherwise


@dataclass
class BracketNode:
    index: int
    stage: int  # strictly increases along every edge
    side_round: int  # 1-based round within its own side of the bracket
    is_loser_bracket: bool = False
    is_grand_final: bool = False
    slots: List[Optional[SlotSource]] = field(default_factory=lambda: [None, None])
    winner_to: Optional[Edge] = None
    loser_to: Optional[Edge] = None
    alive: bool = True
    round_number: int = 0
    match_number: int = 0

    @property
    def sources(self) -> List[SlotSource]:
        return [source for source in self.slots if source is not None]

    def entry_in(self, position: int) -> Optional[int]:
        source = self.slots[position - 1]
        if source is not None and source.kind == ENTRY:
            return source.ref
        return None


@dataclass
class BracketPlan:
    format: TournamentFormat
    bracket_size: int
    winners_rounds: int
    nodes: List[BracketNode]

    def node(self, index: int) -> BracketNode:
        for node in self.nodes:
            if node.index == index:
                return node
        raise KeyError(index)

    @property
    def sink(self) -> BracketNode:
        return next(node for node in self.nodes if node.winner_to is None)


def calculate_bracket_size(num_entries: int) -> int:
    """Next power of two, the number of slots in the opening round."""
    if num_entries <= 1:
        return num_entries
    return 2 ** math.ceil(math.log2(num_entries))


def calculate_byes(num_entries: int) -> int:
    return calculate_bracket_size(num_entries) - num_entries


def seed_order(bracket_size: int) -> List[int]:
    """
    Standard bracket order: if the higher seed always wins, seeds meet as late as possible.

    For 8 slots: [1, 8, 4, 5, 2, 7, 3, 6], giving 1v8, 4v5, 2v7 and 3v6.
    """
    if bracket_size == 1:
        return [1]
    if bracket_size == 2:
        return [1, 2]
    upper_half = seed_order(bracket_size // 2)
    result: List[int] = []
    for seed in upper_half:
        result.extend([seed, bracket_size + 1 - seed])
    return result


def single_elimination_round_number(side_round: int, total_rounds: int) -> int:
    """The final is -1; otherwise the opening round keeps its ordinal and the last rounds after it use -3/-2."""
    if side_round == total_rounds:
        return -1
    if side_round == 1:
        return 1
    rounds_from_end = total_rounds - side_round
    if rounds_from_end < 3:
        return -(rounds_from_end + 1)
    return side_round


class _Arena:
    def __init__(self):
        self.nodes: List[BracketNode] = []

    def add(self, stage: int, side_round: int, is_loser_bracket: bool = False) -> BracketNode:
        node = BracketNode(
            index=len(self.nodes),
            stage=stage,
            side_round=side_round,
            is_loser_bracket=is_loser_bracket,
        )
        self.nodes.append(node)
        return node

    def route(self, source: SlotSource, target: int, slot: int) -> None:
        self.nodes[target].slots[slot - 1] = source
        if source.kind == WINNER:
            self.nodes[source.ref].winner_to = (target, slot)
        elif source.kind == LOSER:
            self.nodes[source.ref].loser_to = (target, slot)

    def link_winner(self, source: BracketNode, target: BracketNode, slot: int) -> None:
        self.route(SlotSource(WINNER, source.index), target.index, slot)

    def link_loser(self, source: BracketNode, target: BracketNode, slot: int) -> None:
        self.route(SlotSource(LOSER, source.index), target.index, slot)

    def alive(self) -> List[BracketNode]:
        return [node for node in self.nodes if node.alive]

    def prune(self) -> None:
        changed = True
        while changed:
            changed = False
            for node in self.alive():
                sources = node.sources
                if len(sources) == 2 or node.winner_to is None:
                    continue
                node.alive = False
                changed = True
                target, slot = node.winner_to
                if sources:
                    self.route(sources[0], target, slot)
                else:
                    self.nodes[target].slots[slot - 1] = None
                if node.loser_to is not None:
                    loser_target, loser_slot = node.loser_to
                    self.nodes[loser_target].slots[loser_slot - 1] = None


def _opening_round(arena: _Arena, entries: Sequence[int], bracket_size: int) -> List[BracketNode]:
    seeds = seed_order(bracket_size)
    by_seed: Dict[int, int] = {seed: entry for seed, entry in enumerate(entries, start=1)}
    opening: List[BracketNode] = []
    for i in range(0, bracket_size, 2):
        node = arena.add(stage=1, side_round=1)
        for position, seed in enumerate(seeds[i:i + 2], start=1):
            entry = by_seed.get(seed)
            if entry is not None:
                node.slots[position - 1] = SlotSource(ENTRY, entry)
        opening.append(node)
    return opening


def _winners_bracket(arena: _Arena, entries: Sequence[int], bracket_size: int) -> List[List[BracketNode]]:
    rounds = [_opening_round(arena, entries, bracket_size)]
    total_rounds = int(math.log2(bracket_size))
    for side_round in range(2, total_rounds + 1):
        previous = rounds[-1]
        current: List[BracketNode] = []
        for i in range(0, len(previous), 2):
            node = arena.add(stage=side_round, side_round=side_round)
            arena.link_winner(previous[i], node, 1)
            arena.link_winner(previous[i + 1], node, 2)
            current.append(node)
        rounds.append(current)
    return rounds


def _losers_bracket(arena: _Arena, winners: List[List[BracketNode]]) -> List[List[BracketNode]]:
    """
    Losers of winners round 1 pair off in losers round 1. Losers of winners
    round w >= 2 drop into losers round 2w - 2 against the survivors of the
    previous losers round, in reverse order to postpone rematches. Minor rounds
    in between halve the field.
    """
    total_winners_rounds = len(winners)
    rounds: List[List[BracketNode]] = []

    first: List[BracketNode] = []
    opening = winners[0]
    for i in range(0, len(opening), 2):
        node = arena.add(stage=2, side_round=1, is_loser_bracket=True)
        arena.link_loser(opening[i], node, 1)
        arena.link_loser(opening[i + 1], node, 2)
        first.append(node)
    rounds.append(first)

    for winners_round in range(2, total_winners_rounds + 1):
        dropping = list(reversed(winners[winners_round - 1]))
        side_round = 2 * winners_round - 2
        major: List[BracketNode] = []
        for dropped, survivor in zip(dropping, rounds[-1]):
            node = arena.add(stage=side_round + 1, side_round=side_round, is_loser_bracket=True)
            arena.link_loser(dropped, node, 1)
            arena.link_winner(survivor, node, 2)
            major.append(node)
        rounds.append(major)

        if winners_round < total_winners_rounds:
            side_round += 1
            minor: List[BracketNode] = []
            previous = rounds[-1]
            for i in range(0, len(previous), 2):
                node = arena.add(stage=side_round + 1, side_round=side_round, is_loser_bracket=True)
                arena.link_winner(previous[i], node, 1)
                arena.link_winner(previous[i + 1], node, 2)
                minor.append(node)
            rounds.append(minor)
    return rounds


def _number_matches(nodes: List[BracketNode]) -> None:
    counters: Dict[Tuple[bool, int], int] = {}
    for node in sorted(nodes, key=lambda n: (n.stage, n.index)):
        key = (node.is_loser_bracket, node.round_number)
        counters[key] = counters.get(key, 0) + 1
        node.match_number = counters[key]


def build_single_elimination(entries: Sequence[int]) -> BracketPlan:
    bracket_size = calculate_bracket_size(len(entries))
    arena = _Arena()
    winners = _winners_bracket(arena, entries, bracket_size)
    arena.prune()

    total_rounds = len(winners)
    nodes = arena.alive()
    for node in nodes:
        node.round_number = single_elimination_round_number(node.side_round, total_rounds)
    _number_matches(nodes)
    return BracketPlan(TournamentFormat.SINGLE_ELIMINATION, bracket_size, total_rounds, nodes)


def build_double_elimination(entries: Sequence[int]) -> BracketPlan:
    bracket_size = calculate_bracket_size(len(entries))
    arena = _Arena()
    winners = _winners_bracket(arena, entries, bracket_size)
    winners_final = winners[-1][0]

    if len(winners) == 1:
        # Two entries: the loser of the only winners match goes straight to the grand final.
        grand_final = arena.add(stage=2, side_round=1)
        arena.link_winner(winners_final, grand_final, 1)
        arena.link_loser(winners_final, grand_final, 2)
    else:
        losers = _losers_bracket(arena, winners)
        losers_final = losers[-1][0]
        grand_final = arena.add(stage=losers_final.stage + 1, side_round=1)
        arena.link_winner(winners_final, grand_final, 1)
        arena.link_winner(losers_final, grand_final, 2)
    grand_final.is_grand_final = True

    arena.prune()
    nodes = arena.alive()
    for node in nodes:
        node.round_number = FINAL_ROUND if node.is_grand_final else node.side_round
    _number_matches(nodes)
    return BracketPlan(TournamentFormat.DOUBLE_ELIMINATION, bracket_size, len(winners), nodes)


def validate_plan(plan: BracketPlan) -> None:
    """Raises DataIntegrityError unless the plan is a DAG with one sink and consistent edges."""
    problems: List[str] = []
    by_index = {node.index: node for node in plan.nodes}

    for node in plan.nodes:
        if len(node.sources) != 2:
            problems.append(f"Node {node.index} has {len(node.sources)} sources.")
        for label, edge in (("winner", node.winner_to), ("loser", node.loser_to)):
            if edge is None:
                continue
            target_index, slot = edge
            target = by_index.get(target_index)
            if target is None:
                problems.append(f"Node {node.index} {label} edge points to missing node {target_index}.")
                continue
            if target.stage <= node.stage:
                problems.append(
                    f"Node {node.index} {label} edge points to node {target_index} in an earlier or equal stage."
                )
            source = target.slots[slot - 1]
            expected_kind = WINNER if label == "winner" else LOSER
            if source is None or source.kind != expected_kind or source.ref != node.index:
                problems.append(f"Node {target_index} slot {slot} does not point back to node {node.index}.")

    sinks = [node for node in plan.nodes if node.winner_to is None]
    if len(sinks) != 1:
        problems.append(f"Bracket has {len(sinks)} sinks; expected exactly one.")

    for node in plan.nodes:
        seen = set()
        current: Optional[BracketNode] = node
        while current is not None and current.winner_to is not None:
            if current.index in seen:
                problems.append(f"Cycle detected through node {current.index}.")
                break
            seen.add(current.index)
            current = by_index.get(current.winner_to[0])

    if problems:
        raise DataIntegrityError("Generated bracket failed integrity checks.", errors=problems)


def build_bracket(entries: Sequence[int], tournament_format: TournamentFormat, min_participants: int = 2) -> BracketPlan:
    """Entry point for bracket generation. ``entries`` are registration ids, best seed first."""
    if tournament_format in (TournamentFormat.ROUND_ROBIN, TournamentFormat.SWISS_SYSTEM):
        raise FormatNotSupported(
            f"{tournament_format.value} tournaments are scheduled in rounds and ranked by standings, not bracketed."
        )
    required = max(2, min_participants)
    if len(entries) < required:
        raise InvalidBracketSize(
            f"A bracket needs at least {required} confirmed entries; {len(entries)} available."
        )
    if len(set(entries)) != len(entries):
        raise DataIntegrityError("Seeded entries contain duplicates.")

    if tournament_format == TournamentFormat.SINGLE_ELIMINATION:
        plan = build_single_elimination(entries)
    elif tournament_format == TournamentFormat.DOUBLE_ELIMINATION:
        plan = build_double_elimination(entries)
    else:
        raise FormatNotSupported(f"Unsupported tournament format: {tournament_format!r}")

    validate_plan(plan)
    return plan
