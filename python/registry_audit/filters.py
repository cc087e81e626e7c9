"""
Eligibility filters applied to the catalog before usage correlation.

Stages run in a fixed order over the surviving entries:
1. age: keep tags created strictly before now - min_expiry_days
2. pattern: drop tags matching the exclusion regular expression

Every dropped entry is reported individually with the reason.
"""

import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import List, Optional, Tuple

from registry_audit.image_catalog import ImageCatalog, ImageEntry
from registry_audit.logging_utils import get_logger
from registry_audit.registry_client import RegistryClient

logger = get_logger(__name__)

REASON_TOO_YOUNG = "too_young"
REASON_NO_CREATION_DATE = "no_creation_date"
REASON_PATTERN_MATCH = "pattern_match"


@dataclass
class FilterRejection:
    entry: ImageEntry
    reason: str
    detail: str = ""


@dataclass
class FilterOutcome:
    catalog: ImageCatalog
    rejections: List[FilterRejection] = field(default_factory=list)


def resolve_creation_dates(catalog: ImageCatalog, registry: RegistryClient) -> None:
    """Fill created_at for every entry that does not have one yet.

    A tag that disappeared (404) keeps created_at unset. Any other failure
    propagates and ends the run.
    """
    for entry in catalog:
        if entry.created_at is None:
            entry.created_at = registry.get_created_at(entry.tag)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def filter_by_age(
    entries: List[ImageEntry], min_expiry_days: int, now: Optional[datetime] = None
) -> Tuple[List[ImageEntry], List[FilterRejection]]:
    """Keep entries created strictly before now - min_expiry_days."""
    now = _as_utc(now or datetime.now(timezone.utc))
    cutoff = now - timedelta(days=min_expiry_days)

    kept, rejected = [], []
    for entry in entries:
        if entry.created_at is None:
            logger.info(f"Image {entry.display_name} has no creation date, skipped")
            rejected.append(FilterRejection(entry, REASON_NO_CREATION_DATE))
        elif _as_utc(entry.created_at) < cutoff:
            kept.append(entry)
        else:
            logger.info(f"Image {entry.display_name} is too young, skipped: {entry.created_at.isoformat()}")
            rejected.append(FilterRejection(entry, REASON_TOO_YOUNG, entry.created_at.isoformat()))
    return kept, rejected


def filter_by_pattern(
    entries: List[ImageEntry], pattern: Optional[str]
) -> Tuple[List[ImageEntry], List[FilterRejection]]:
    """Drop entries whose tag matches pattern (search, not full match)."""
    if not pattern:
        return list(entries), []

    regex = re.compile(pattern)
    kept, rejected = [], []
    for entry in entries:
        if regex.search(entry.tag):
            logger.info(f"Image {entry.display_name} matches regexp, skipped: {pattern}")
            rejected.append(FilterRejection(entry, REASON_PATTERN_MATCH, pattern))
        else:
            kept.append(entry)
    return kept, rejected


def run_filter_pipeline(
    catalog: ImageCatalog,
    min_expiry_days: int,
    pattern: Optional[str] = None,
    now: Optional[datetime] = None,
) -> FilterOutcome:
    """Apply the age stage, then the pattern stage, and return the survivors"""
    survivors, age_rejections = filter_by_age(catalog.entries, min_expiry_days, now)
    survivors, pattern_rejections = filter_by_pattern(survivors, pattern)

    outcome = FilterOutcome(catalog.keep(survivors), age_rejections + pattern_rejections)
    logger.info(
        f"{len(outcome.catalog)} of {len(catalog)} tags eligible "
        f"({len(age_rejections)} too young or undated, {len(pattern_rejections)} excluded by pattern)"
    )
    return outcome
