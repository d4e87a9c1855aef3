"""
Normalization of RetroAchievements leaderboard payloads.

The provider answers leaderboard queries in several shapes depending on the
endpoint and API version. Every shape is classified into a ``PayloadShape``
first, then rows are normalized into ``LeaderboardEntry`` objects.
"""

import logging
from enum import Enum
from typing import Any, List, Optional, Tuple

from select_start.data_models.leaderboard import LeaderboardEntry
from select_start.utils.exceptions import MalformedResponseError

logger = logging.getLogger(__name__)

USER_FIELDS = ('User', 'user', 'Username', 'username')
FORMATTED_SCORE_FIELDS = ('FormattedScore', 'formattedScore', 'ScoreFormatted', 'scoreFormatted')
RAW_SCORE_FIELDS = ('Score', 'score', 'Value', 'value')
RANK_FIELDS = ('Rank', 'rank', 'ApiRank', 'apiRank')
DATE_FIELDS = ('DateSubmitted', 'dateSubmitted', 'DateUpdated', 'dateUpdated')


class PayloadShape(Enum):
    """Known leaderboard payload layouts."""
    ARRAY = "array"        # [...]
    RESULTS = "results"    # {"Results": [...]}
    ENTRIES = "entries"    # {"Entries": [...]}
    KEYED = "keyed"        # {"<key>": {...}, ...}
    EMBEDDED = "embedded"  # {"data": [...], "Total": 3}


def _find_key(payload: dict, name: str) -> Optional[str]:
    """Case-insensitive key lookup."""
    lowered = name.lower()
    for key in payload:
        if isinstance(key, str) and key.lower() == lowered:
            return key
    return None


def classify_payload(payload: Any, endpoint: str = "leaderboard") -> Tuple[PayloadShape, List[Any]]:
    """
    Classify a raw provider payload and extract its row list.

    Raises:
        MalformedResponseError: If the payload matches none of the known shapes
    """
    if isinstance(payload, list):
        return PayloadShape.ARRAY, payload

    if not isinstance(payload, dict):
        raise MalformedResponseError(endpoint, f"unexpected payload type {type(payload).__name__}")

    for shape, name in ((PayloadShape.RESULTS, 'Results'), (PayloadShape.ENTRIES, 'Entries')):
        key = _find_key(payload, name)
        if key is not None and isinstance(payload[key], list):
            return shape, payload[key]

    if payload and all(isinstance(value, dict) for value in payload.values()):
        return PayloadShape.KEYED, list(payload.values())

    for value in payload.values():
        if isinstance(value, list):
            return PayloadShape.EMBEDDED, value

    raise MalformedResponseError(endpoint, "no leaderboard rows found")


def _first_present(row: dict, fields: Tuple[str, ...]) -> Any:
    for field in fields:
        value = row.get(field)
        if value is not None and value != "":
            return value
    return None


def _parse_rank(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        rank = value
    elif isinstance(value, float):
        if not value.is_integer():
            return None
        rank = int(value)
    elif isinstance(value, str):
        try:
            rank = int(value.strip())
        except ValueError:
            return None
    else:
        return None
    return rank if rank >= 1 else None


def _parse_raw_value(value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def normalize_entry(row: Any) -> Optional[LeaderboardEntry]:
    """Normalize a single row, returning None when it cannot be used."""
    if not isinstance(row, dict):
        logger.debug(f"Dropping non-object leaderboard row: {row!r}")
        return None

    username = _first_present(row, USER_FIELDS)
    if username is None:
        logger.debug(f"Dropping leaderboard row without user: {row!r}")
        return None

    raw_score = _first_present(row, RAW_SCORE_FIELDS)
    formatted = _first_present(row, FORMATTED_SCORE_FIELDS)
    if formatted is None and raw_score is None:
        logger.debug(f"Dropping leaderboard row without score for {username}")
        return None

    rank = _parse_rank(_first_present(row, RANK_FIELDS))
    if rank is None:
        logger.debug(f"Dropping leaderboard row with unusable rank for {username}")
        return None

    return LeaderboardEntry(
        username=str(username).strip(),
        api_rank=rank,
        score=str(formatted if formatted is not None else raw_score),
        raw_value=_parse_raw_value(raw_score),
        date_submitted=_first_present(row, DATE_FIELDS),
    )


def normalize_leaderboard_entries(payload: Any, endpoint: str = "leaderboard") -> List[LeaderboardEntry]:
    """
    Normalize any known leaderboard payload into a list of entries.

    Individual unusable rows are dropped. A payload whose overall shape is not
    recognized raises ``MalformedResponseError``.
    """
    entries, _ = normalize_leaderboard_page(payload, endpoint)
    return entries


def normalize_leaderboard_page(payload: Any, endpoint: str = "leaderboard") -> Tuple[List[LeaderboardEntry], int]:
    """Like normalize_leaderboard_entries, also returning how many rows the payload held."""
    shape, rows = classify_payload(payload, endpoint)
    entries = []
    for row in rows:
        entry = normalize_entry(row)
        if entry is not None:
            entries.append(entry)

    dropped = len(rows) - len(entries)
    if dropped:
        logger.debug(f"Normalized {shape.value} payload from {endpoint}: kept {len(entries)}, dropped {dropped}")
    return entries, len(rows)
