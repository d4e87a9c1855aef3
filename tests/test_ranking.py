"""
Tests for LeaderboardRanker tie handling.
"""

import pytest

from select_start.data_models.leaderboard import TiebreakerContext
from select_start.utils.ranking import LeaderboardRanker
from conftest import make_entry, make_participant


def ranks(ranked):
    return {p.username: p.display_rank for p in ranked}


@pytest.fixture
def ranker():
    return LeaderboardRanker()


class TestBasicOrdering:
    """Participants without ties rank 1..N."""

    def test_strictly_decreasing_counts(self, ranker):
        participants = [make_participant(f"p{i}", achieved=20 - i) for i in range(6)]

        ranked = ranker.assign_ranks(list(reversed(participants)))

        assert [p.display_rank for p in ranked] == [1, 2, 3, 4, 5, 6]
        assert [p.username for p in ranked] == [f"p{i}" for i in range(6)]

    def test_points_break_equal_counts(self, ranker):
        ranked = ranker.assign_ranks([
            make_participant("low", 5, points=1),
            make_participant("high", 5, points=4),
        ])

        assert ranks(ranked) == {"high": 1, "low": 2}

    def test_empty_input(self, ranker):
        assert ranker.assign_ranks([]) == []

    def test_zero_achievements_are_dropped(self, ranker):
        ranked = ranker.assign_ranks([make_participant("idle", 0), make_participant("active", 3)])

        assert [p.username for p in ranked] == ["active"]
        assert ranked[0].display_rank == 1

    def test_ranks_never_decrease(self, ranker):
        participants = [
            make_participant("a", 9), make_participant("b", 9), make_participant("c", 7),
            make_participant("d", 7), make_participant("e", 7), make_participant("f", 2),
        ]

        ranked = ranker.assign_ranks(participants, [make_entry("b", 1), make_entry("d", 4)])

        display = [p.display_rank for p in ranked]
        assert display == sorted(display)
        assert ranks(ranked)["f"] == 6


class TestPodiumTiebreaks:
    """Ties inside the podium window use the tiebreaker leaderboard."""

    def test_tiebreaker_orders_tied_group(self, ranker):
        participants = [
            make_participant("first", 10),
            make_participant("second", 10),
            make_participant("third", 10),
        ]
        entries = [make_entry("first", 3), make_entry("second", 1)]

        ranked = ranker.assign_ranks(participants, entries)

        assert ranks(ranked) == {"second": 1, "first": 2, "third": 3}
        assert [p.username for p in ranked] == ["second", "first", "third"]
        assert ranked[0].tiebreaker_rank == 1
        assert ranked[0].has_tiebreaker is True
        assert ranked[2].tiebreaker_score is None

    def test_example_standings(self, ranker):
        participants = [
            make_participant("A", 10, points=7),
            make_participant("B", 10, points=4),
            make_participant("C", 8, points=4),
        ]
        entries = [make_entry("b", 1), make_entry("a", 2)]

        ranked = ranker.assign_ranks(participants, entries, total_achievements=10)

        assert ranks(ranked) == {"B": 1, "A": 2, "C": 3}
        assert ranked[0].percentage == 100.0

    def test_incomplete_set_orders_by_points(self, ranker):
        participants = [
            make_participant("A", 10, points=7),
            make_participant("B", 10, points=4),
            make_participant("C", 8, points=4),
        ]
        entries = [make_entry("b", 1), make_entry("a", 2)]

        ranked = ranker.assign_ranks(participants, entries)

        assert ranks(ranked) == {"A": 1, "B": 2, "C": 3}

    def test_full_completion_ignores_points(self, ranker):
        ranked = ranker.assign_ranks([
            make_participant("A", 12, points=7, percentage=100.0),
            make_participant("B", 12, points=4, percentage=100.0),
        ])

        assert ranks(ranked) == {"A": 1, "B": 1}

    def test_group_starting_inside_window(self, ranker):
        participants = [
            make_participant("leader", 15),
            make_participant("runner", 14),
            make_participant("x", 10),
            make_participant("y", 10),
        ]

        ranked = ranker.assign_ranks(participants, [make_entry("y", 7), make_entry("x", 9)])

        assert ranks(ranked) == {"leader": 1, "runner": 2, "y": 3, "x": 4}

    def test_matching_ignores_case(self, ranker):
        ranked = ranker.assign_ranks(
            [make_participant("Alice", 5), make_participant("BOB", 5)],
            [make_entry("bob", 1), make_entry("ALICE", 2)],
        )

        assert ranks(ranked) == {"BOB": 1, "Alice": 2}

    def test_group_without_entries_shares_rank(self, ranker):
        ranked = ranker.assign_ranks(
            [make_participant("a", 5), make_participant("b", 5), make_participant("c", 4)],
            [make_entry("someone_else", 1)],
        )

        assert ranks(ranked) == {"a": 1, "b": 1, "c": 3}


class TestOutsideWindow:
    """Ties outside the podium share a rank."""

    def test_tie_at_index_five(self, ranker):
        participants = [make_participant(f"top{i}", 20 - i) for i in range(5)]
        participants += [make_participant("tied_a", 3), make_participant("tied_b", 3)]
        entries = [make_entry("tied_b", 1), make_entry("tied_a", 2)]

        ranked = ranker.assign_ranks(participants, entries)

        assert ranks(ranked)["tied_a"] == 6
        assert ranks(ranked)["tied_b"] == 6

    def test_tie_starting_at_window_edge(self, ranker):
        participants = [make_participant(f"top{i}", 20 - i) for i in range(3)]
        participants += [make_participant("d", 3), make_participant("e", 3)]

        ranked = ranker.assign_ranks(participants, [make_entry("e", 1), make_entry("d", 2)])

        assert ranks(ranked)["d"] == 4
        assert ranks(ranked)["e"] == 4

    def test_custom_window(self):
        ranker = LeaderboardRanker(podium_window=1)
        participants = [
            make_participant("leader", 9),
            make_participant("a", 5),
            make_participant("b", 5),
        ]

        ranked = ranker.assign_ranks(participants, [make_entry("b", 1), make_entry("a", 2)])

        assert ranks(ranked) == {"leader": 1, "a": 2, "b": 2}

    def test_context_window_overrides_ranker(self, ranker):
        participants = [make_participant("a", 5), make_participant("b", 5)]
        context = TiebreakerContext(game_title="Pole Position", podium_window=0)

        ranked = ranker.assign_ranks(participants, [make_entry("b", 1)], tiebreaker_context=context)

        assert ranks(ranked) == {"a": 1, "b": 1}


class TestBreakerBoard:
    """Equal tiebreaker ranks fall through to the breaker board."""

    def test_breaker_resolves_equal_tiebreaker_ranks(self, ranker):
        participants = [make_participant("a", 8), make_participant("b", 8), make_participant("c", 8)]
        entries = [make_entry("a", 2), make_entry("b", 2), make_entry("c", 1)]
        context = TiebreakerContext(
            game_title="Mario Kart",
            breaker_entries=[make_entry("b", 4), make_entry("a", 9)],
            breaker_game_title="F-Zero",
        )

        ranked = ranker.assign_ranks(participants, entries, tiebreaker_context=context)

        assert ranks(ranked) == {"c": 1, "b": 2, "a": 3}
        assert next(p for p in ranked if p.username == "b").tiebreaker_breaker_rank == 4

    def test_unresolved_breaker_shares_rank(self, ranker):
        participants = [make_participant("a", 8), make_participant("b", 8), make_participant("c", 8)]
        entries = [make_entry("a", 1), make_entry("b", 1)]

        ranked = ranker.assign_ranks(participants, entries)

        assert ranks(ranked) == {"a": 1, "b": 1, "c": 3}

    def test_partial_breaker_entries(self, ranker):
        participants = [make_participant("a", 8), make_participant("b", 8)]
        entries = [make_entry("a", 1), make_entry("b", 1)]
        context = TiebreakerContext(breaker_entries=[make_entry("b", 3)])

        ranked = ranker.assign_ranks(participants, entries, tiebreaker_context=context)

        assert ranks(ranked) == {"b": 1, "a": 2}
