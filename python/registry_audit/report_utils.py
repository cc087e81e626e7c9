"""
Utility functions for report generation and saving.

This module provides functions to:
- Render the unused candidates as a table
- Assemble the JSON audit report
- Save reports as indented JSON
"""
import json
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from tabulate import tabulate

from registry_audit.logging_utils import get_logger

logger = get_logger(__name__)


# ============================================================================
# Formatting
# ============================================================================

def format_age(created_at: Optional[datetime], now: Optional[datetime] = None) -> str:
    if created_at is None:
        return "unknown"
    now = now or datetime.now(timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return f"{(now - created_at).days}d"


def format_candidates_table(entries: List, now: Optional[datetime] = None) -> str:
    """Grid table of image entries (tag, created, age, digest)"""
    headers = ["Image", "Created", "Age", "Digest"]
    rows = [
        [
            entry.display_name,
            entry.created_at.isoformat() if entry.created_at else "",
            format_age(entry.created_at, now),
            entry.digest or "",
        ]
        for entry in entries
    ]
    return tabulate(rows, headers=headers, tablefmt="grid")


def build_audit_report(result) -> Dict[str, Any]:
    """JSON serializable summary of one audit run"""
    config = result.config
    report = {
        "generated_at": datetime.now(timezone.utc),
        "registry_url": config.registry_url,
        "repository": config.repository,
        "min_expiry_days": config.min_expiry_days,
        "exclude_pattern": config.exclude_pattern,
        "clusters": list(config.kubeconfigs),
        "failed_clusters": {k: str(v) for k, v in result.correlation.failed_clusters.items()},
        "total_tags": result.total_tags,
        "rejected": [
            {"image": r.entry.display_name, "reason": r.reason, "detail": r.detail}
            for r in result.rejections
        ],
        "used": [e.to_dict() for e in result.catalog.used()],
        "unused": [e.to_dict() for e in result.catalog.unused()],
        "deletion_refused": result.deletion_refused,
        "deletion": result.deletion.to_dict() if result.deletion else None,
    }
    return report


# ============================================================================
# Report Saving Functions
# ============================================================================

def _to_jsonable(data: Any) -> Any:
    """Recursively convert datetimes, sets and tuples to JSON types"""
    if isinstance(data, (datetime, date)):
        return data.isoformat()
    elif isinstance(data, (set, frozenset)):
        try:
            return [_to_jsonable(item) for item in sorted(data)]
        except TypeError:
            return [_to_jsonable(item) for item in data]
    elif isinstance(data, dict):
        return {k: _to_jsonable(v) for k, v in data.items()}
    elif isinstance(data, (list, tuple)):
        return [_to_jsonable(item) for item in data]
    return data


def save_json(path: str, data: Any) -> str:
    """
    Write JSON data to a file with indentation.

    Args:
        path: Path to save the JSON file
        data: Data to save

    Returns:
        Path to the saved file
    """
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)

    with open(p, 'w') as f:
        json.dump(_to_jsonable(data), f, indent=2)
    logger.info(f"Saved JSON to {p}")
    return str(p)
