"""
Tie-aware ranking for the monthly challenge standings.

Participants are ordered by achievements earned this month. Ties inside the
podium window are broken by the active tiebreaker leaderboard (and, when
configured, a second "tiebreaker-breaker" board); ties elsewhere share a rank.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence

from select_start.constants import RankingConstants
from select_start.data_models.leaderboard import (
    LeaderboardEntry, Participant, RankedParticipant, TiebreakerContext
)

logger = logging.getLogger(__name__)


@dataclass
class _Row:
    participant: Participant
    original_index: int
    percentage: Optional[float]
    tb_entry: Optional[LeaderboardEntry] = None
    breaker_entry: Optional[LeaderboardEntry] = None
    display_rank: int = 0


def _index_entries(entries: Optional[Iterable[LeaderboardEntry]]) -> Dict[str, LeaderboardEntry]:
    """Map lowercase username to the first usable entry."""
    index = {}
    for entry in entries or ():
        username = getattr(entry, 'username', None)
        rank = getattr(entry, 'api_rank', None)
        if not username or not isinstance(rank, int) or isinstance(rank, bool):
            continue
        index.setdefault(username.lower(), entry)
    return index


class LeaderboardRanker:
    """Assigns display ranks to challenge participants."""

    def __init__(self, podium_window: int = RankingConstants.PODIUM_WINDOW):
        self.podium_window = podium_window

    @staticmethod
    def is_complete(percentage: Optional[float]) -> bool:
        return percentage is not None and percentage >= RankingConstants.FULL_COMPLETION

    def _sort_key(self, row: _Row):
        # Full completion ignores points so complete players stay tied
        points = 0 if self.is_complete(row.percentage) else -row.participant.points
        return (-row.participant.achieved, points)

    def _tie_key(self, row: _Row):
        points = None if self.is_complete(row.percentage) else row.participant.points
        return (row.participant.achieved, points)

    def assign_ranks(
        self,
        participants: Sequence[Participant],
        tiebreaker_entries: Optional[Iterable[LeaderboardEntry]] = None,
        tiebreaker_context: Optional[TiebreakerContext] = None,
        total_achievements: Optional[int] = None,
    ) -> List[RankedParticipant]:
        """
        Rank participants and return them ordered by display rank.

        Args:
            participants: Challenge participants in any order
            tiebreaker_entries: Normalized rows from the tiebreaker leaderboard
            tiebreaker_context: Podium window and optional breaker rows
            total_achievements: Used to derive completion percentage when a
                participant does not carry one

        Returns:
            Ranked participants, stable for equal ranks
        """
        if not participants:
            return []

        context = tiebreaker_context or TiebreakerContext(podium_window=self.podium_window)
        tb_index = _index_entries(tiebreaker_entries)
        breaker_index = _index_entries(context.breaker_entries)

        rows = []
        for participant in participants:
            if participant.achieved <= 0:
                logger.debug(f"Skipping {participant.username}: no achievements this month")
                continue
            percentage = participant.percentage
            if percentage is None and total_achievements:
                percentage = round(participant.achieved / total_achievements * 100, 2)
            rows.append(_Row(participant=participant, original_index=0, percentage=percentage))

        rows = sorted(rows, key=self._sort_key)
        for index, row in enumerate(rows):
            row.original_index = index
            key = row.participant.username.lower()
            row.tb_entry = tb_index.get(key)
            row.breaker_entry = breaker_index.get(key)

        start = 0
        while start < len(rows):
            end = start + 1
            tie_key = self._tie_key(rows[start])
            while end < len(rows) and self._tie_key(rows[end]) == tie_key:
                end += 1
            self._rank_group(rows[start:end], start, context.podium_window)
            start = end

        rows.sort(key=lambda r: (r.display_rank, r.original_index))
        return [self._to_ranked(row) for row in rows]

    def _rank_group(self, group: List[_Row], start_index: int, podium_window: int) -> None:
        provisional = start_index + 1
        resolved = [row for row in group if row.tb_entry is not None]

        if len(group) == 1 or start_index >= podium_window or not resolved:
            for row in group:
                row.display_rank = provisional
            return

        resolved.sort(key=lambda r: (r.tb_entry.api_rank, r.original_index))
        next_rank = provisional
        i = 0
        while i < len(resolved):
            j = i + 1
            while j < len(resolved) and resolved[j].tb_entry.api_rank == resolved[i].tb_entry.api_rank:
                j += 1
            same_tb_rank = resolved[i:j]
            if len(same_tb_rank) == 1:
                same_tb_rank[0].display_rank = next_rank
            else:
                self._rank_breaker_group(same_tb_rank, next_rank)
            next_rank += len(same_tb_rank)
            i = j

        for row in group:
            if row.tb_entry is None:
                row.display_rank = next_rank

    @staticmethod
    def _rank_breaker_group(group: List[_Row], start_rank: int) -> None:
        """Resolve rows sharing a tiebreaker rank using the breaker board."""
        with_breaker = sorted(
            (row for row in group if row.breaker_entry is not None),
            key=lambda r: (r.breaker_entry.api_rank, r.original_index)
        )
        if not with_breaker:
            for row in group:
                row.display_rank = start_rank
            return

        for offset, row in enumerate(with_breaker):
            row.display_rank = start_rank + offset
        next_rank = start_rank + len(with_breaker)
        for row in group:
            if row.breaker_entry is None:
                row.display_rank = next_rank

    @staticmethod
    def _to_ranked(row: _Row) -> RankedParticipant:
        participant = row.participant
        return RankedParticipant(
            username=participant.username,
            achieved=participant.achieved,
            points=participant.points,
            percentage=row.percentage,
            display_rank=row.display_rank,
            original_index=row.original_index,
            tiebreaker_score=row.tb_entry.score if row.tb_entry else None,
            tiebreaker_rank=row.tb_entry.api_rank if row.tb_entry else None,
            tiebreaker_breaker_score=row.breaker_entry.score if row.breaker_entry else None,
            tiebreaker_breaker_rank=row.breaker_entry.api_rank if row.breaker_entry else None,
            discord_id=participant.discord_id,
            award=participant.award,
        )
