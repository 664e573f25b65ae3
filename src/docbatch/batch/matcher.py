"""Index-based re-association of results with job items.

Every request is submitted with a correlation token ending in its item's
stable index (``request-<stamp>-<index>``). Matching decodes that suffix and
never looks at content, so reordered or partial results, and many
near-identical source files, map back correctly.

Whenever the mapping is ambiguous the matcher skips rather than guesses:
undecodable tokens are dropped, and an index claimed by two different
results is dropped entirely.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence, Tuple, Union

from docbatch.batch.models import JobItem, ResultRecord

logger = logging.getLogger(__name__)

_INDEX_SUFFIX = re.compile(r"-([0-9]+)$")
_ASCII_DIGITS = re.compile(r"[0-9]+")


def encode_token(prefix: str, index: int) -> str:
    """Build the correlation token for one request."""
    return f"{prefix}-{index}"


def decode_token(token: Union[str, int, None]) -> Optional[int]:
    """Extract the stable index from a correlation token.

    Accepts ``<anything>-<digits>`` and bare integers, ASCII digits only.
    Returns None for anything else.

    >>> decode_token("request-2025-01-01T00-00-00-000Z-12")
    12
    >>> decode_token("request-abc") is None
    True
    """
    if isinstance(token, bool) or token is None:
        return None
    if isinstance(token, int):
        return token if token >= 0 else None
    token = str(token).strip()
    if _ASCII_DIGITS.fullmatch(token):
        return int(token)
    match = _INDEX_SUFFIX.search(token)
    if not match:
        return None
    return int(match.group(1))


@dataclass
class MatchReport:
    """Outcome of matching one job's results against its items."""

    matched: List[Tuple[JobItem, str]] = field(default_factory=list)
    skipped: List[JobItem] = field(default_factory=list)
    dropped_tokens: List[str] = field(default_factory=list)

    @property
    def matched_count(self) -> int:
        return len(self.matched)

    @property
    def skipped_count(self) -> int:
        return len(self.skipped)


def build_index_map(
    records: Iterable[ResultRecord],
    known_indices: Optional[Sequence[int]] = None,
) -> Tuple[Dict[int, str], List[str]]:
    """Map decoded stable indices to result content.

    Args:
        records: Normalized results in any order
        known_indices: If given, indices outside this set are dropped

    Returns:
        Tuple of (index -> content, dropped correlation tokens)
    """
    known = set(known_indices) if known_indices is not None else None
    mapping: Dict[int, str] = {}
    tokens_by_index: Dict[int, List[str]] = {}
    ambiguous = set()
    dropped: List[str] = []

    for record in records:
        index = decode_token(record.correlation_token)
        if index is None:
            logger.warning(f"Could not extract index from correlation token: {record.correlation_token}")
            dropped.append(record.correlation_token)
            continue
        if known is not None and index not in known:
            logger.warning(
                f"Correlation token {record.correlation_token} refers to unknown index {index}"
            )
            dropped.append(record.correlation_token)
            continue

        tokens_by_index.setdefault(index, []).append(record.correlation_token)
        if index in ambiguous:
            dropped.append(record.correlation_token)
            continue
        if index in mapping and mapping[index] != record.content:
            logger.warning(
                f"Index {index} is claimed by conflicting results "
                f"{tokens_by_index[index]}; dropping all of them"
            )
            ambiguous.add(index)
            del mapping[index]
            dropped.extend(tokens_by_index[index])
            continue
        mapping[index] = record.content
        logger.debug(f"Mapped correlation token {record.correlation_token} to index {index}")

    return mapping, dropped


def match_results(items: Sequence[JobItem], records: Iterable[ResultRecord]) -> MatchReport:
    """Pair every job item with its result, in registry order.

    Items without a result are reported as skipped; they do not fail the job.
    """
    mapping, dropped = build_index_map(records, [item.stable_index for item in items])
    logger.info(f"Extracted {len(mapping)} valid responses mapped by correlation index")

    report = MatchReport(dropped_tokens=dropped)
    for item in items:
        content = mapping.get(item.stable_index)
        if content is None:
            logger.warning(
                f"No response found for index {item.stable_index} ({item.stable_id or item.file_path})"
            )
            report.skipped.append(item)
            continue
        report.matched.append((item, content))
    return report
