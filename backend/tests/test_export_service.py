"""
CSV export tests.
"""

import csv
import io
import uuid
from datetime import UTC, date, datetime, time

from app.schemas.activity_log import ActivityLogResponse
from app.schemas.swap import ApprovedSwap, OpenSwap, RejectedSwap
from app.services.export_service import (
    ACTIVITY_LOG_HEADERS,
    SWAP_HISTORY_HEADERS,
    activity_log_csv,
    swap_history_csv,
)

CREATED = datetime(2026, 10, 18, 12, 0, tzinfo=UTC)


def _entry(**overrides):
    data = {
        "id": 7,
        "actor_user_id": uuid.uuid4(),
        "actor_name": "Maria",
        "action": "rejected",
        "entity_type": "swap_request",
        "entity_id": "abc",
        "details": {"reason": "a,b"},
        "created_at": CREATED,
    }
    data.update(overrides)
    return ActivityLogResponse(**data)


def _parse(text: str) -> list[list[str]]:
    return list(csv.reader(io.StringIO(text)))


def test_activity_log_csv_column_order_and_quoting():
    lines = activity_log_csv([_entry()]).splitlines()

    assert lines[0] == "ID,User,Action,Entity Type,Entity ID,Details,Created At"
    assert lines[1] == (
        '7,Maria,rejected,swap_request,abc,"{""reason"": ""a,b""}",2026-10-18T12:00:00+00:00'
    )


def test_activity_log_csv_system_actor_and_empty_details():
    rows = _parse(activity_log_csv([_entry(actor_user_id=None, actor_name=None, details=None)]))

    assert rows[1][1] == "System"
    assert rows[1][5] == "{}"


def test_activity_log_csv_round_trips_quotes_through_a_reader():
    reason = 'short notice, "urgent"'
    rows = _parse(activity_log_csv([_entry(details={"reason": reason})]))

    assert rows[0] == ACTIVITY_LOG_HEADERS
    assert rows[1][5] == '{"reason": "short notice, \\"urgent\\""}'


def test_activity_log_csv_with_no_entries_is_header_only():
    assert activity_log_csv([]) == ",".join(ACTIVITY_LOG_HEADERS) + "\n"


def test_swap_history_csv_shows_decision_per_state():
    base = {
        "shift_id": uuid.uuid4(),
        "requester_id": uuid.uuid4(),
        "requester_name": "Alice",
        "date": date(2026, 11, 2),
        "start_time": time(9, 0),
        "end_time": time(17, 0),
        "created_at": CREATED,
    }
    volunteered = {
        "volunteer_id": uuid.uuid4(),
        "volunteer_name": "Bob",
        "volunteer_shift_id": uuid.uuid4(),
        "volunteer_shift_date": date(2026, 11, 3),
        "volunteer_shift_start_time": time(9, 0),
        "volunteer_shift_end_time": time(17, 0),
        "manager_id": uuid.uuid4(),
        "manager_name": "Maria",
    }
    decided_at = datetime(2026, 10, 19, 8, 0, tzinfo=UTC)
    swaps = [
        OpenSwap(id=uuid.uuid4(), **base),
        ApprovedSwap(id=uuid.uuid4(), **base, **volunteered, approved_at=decided_at),
        RejectedSwap(
            id=uuid.uuid4(),
            **base,
            **volunteered,
            rejected_at=decided_at,
            reason="Understaffed, sorry",
        ),
    ]

    rows = _parse(swap_history_csv(swaps))

    assert rows[0] == SWAP_HISTORY_HEADERS
    open_row, approved_row, rejected_row = rows[1:]
    assert open_row[1:] == ["2026-11-02", "Alice", "", "Open", CREATED.isoformat(), "", ""]
    assert approved_row[3:7] == ["Bob", "Approved", CREATED.isoformat(), decided_at.isoformat()]
    assert rejected_row[4] == "Rejected"
    assert rejected_row[7] == "Understaffed, sorry"
