"""
CSV projections for export tooling.

A field containing a comma or double quote is wrapped in double quotes with
inner quotes doubled (``csv.QUOTE_MINIMAL``).
"""

from __future__ import annotations

import csv
import io
import json
from typing import Iterable

from app.schemas.activity_log import ActivityLogResponse
from app.schemas.swap import ApprovedSwap, RejectedSwap, SwapView

ACTIVITY_LOG_HEADERS = ["ID", "User", "Action", "Entity Type", "Entity ID", "Details", "Created At"]
SWAP_HISTORY_HEADERS = [
    "ID",
    "Date",
    "Requester",
    "Volunteer",
    "Status",
    "Created At",
    "Decided At",
    "Reason",
]


def _write(headers: list[str], rows: Iterable[list[object]]) -> str:
    output = io.StringIO()
    writer = csv.writer(output, quoting=csv.QUOTE_MINIMAL, lineterminator="\n")
    writer.writerow(headers)
    writer.writerows(rows)
    return output.getvalue()


def activity_log_csv(entries: Iterable[ActivityLogResponse]) -> str:
    """One row per entry; a null actor is exported as ``System``."""
    rows = (
        [
            entry.id,
            entry.actor_name or "System",
            entry.action,
            entry.entity_type,
            entry.entity_id,
            json.dumps(entry.details or {}),
            entry.created_at.isoformat(),
        ]
        for entry in entries
    )
    return _write(ACTIVITY_LOG_HEADERS, rows)


def swap_history_csv(swaps: Iterable[SwapView]) -> str:
    rows = []
    for swap in swaps:
        decided_at = None
        reason = ""
        if isinstance(swap, ApprovedSwap):
            decided_at = swap.approved_at
        elif isinstance(swap, RejectedSwap):
            decided_at = swap.rejected_at
            reason = swap.reason or ""
        rows.append(
            [
                swap.id,
                swap.date.isoformat(),
                swap.requester_name,
                getattr(swap, "volunteer_name", None) or "",
                swap.status,
                swap.created_at.isoformat(),
                decided_at.isoformat() if decided_at else "",
                reason,
            ]
        )
    return _write(SWAP_HISTORY_HEADERS, rows)
