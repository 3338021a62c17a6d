"""
Activity log tests: append, filtered newest-first paging and per-entity history.
"""

import uuid
from datetime import UTC, date, datetime, time

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from app.core.config import settings
from app.core.exceptions import PersistenceError
from app.models import ActivityLog, SwapStatus
from app.services.activity_log_service import ActivityLogService, sanitize_details


async def _seed(session, *, actor_id, created_at, action="created", entity_id="swap-1"):
    entry = ActivityLog(
        actor_user_id=actor_id,
        action=action,
        entity_type="swap_request",
        entity_id=entity_id,
        details={"seeded": True},
        created_at=created_at,
    )
    session.add(entry)
    await session.commit()
    return entry


def _at(day: int, hour: int = 10) -> datetime:
    return datetime(2026, 10, day, hour, 0, tzinfo=UTC)


# ---------------------------------------------------------------------------
# Append
# ---------------------------------------------------------------------------

async def test_append_returns_persisted_entry(db_session, staff):
    service = ActivityLogService(db_session)
    swap_id = uuid.uuid4()

    entry = await service.append(
        staff["alice"].id, "created", "swap_request", swap_id, {"note": "Dentist"}
    )

    assert entry.id is not None
    assert entry.created_at is not None
    assert entry.entity_id == str(swap_id)
    assert entry.details == {"note": "Dentist"}


async def test_append_accepts_system_actor(db_session):
    service = ActivityLogService(db_session)

    entry = await service.append(None, "expired", "swap_request", "swap-9")

    history = await service.history("swap_request", "swap-9")
    assert [h.id for h in history] == [entry.id]
    assert history[0].actor_user_id is None
    assert history[0].actor_name is None


async def test_append_ids_follow_insertion_order(db_session, staff):
    service = ActivityLogService(db_session)
    ids = [
        (await service.append(staff["bob"].id, action, "swap_request", "swap-1")).id
        for action in ("created", "volunteered", "approved")
    ]

    assert ids == sorted(ids)
    history = await service.history("swap_request", "swap-1")
    assert [h.action for h in history] == ["created", "volunteered", "approved"]
    assert {h.actor_name for h in history} == {"Bob"}


async def test_append_reports_unreachable_store_as_persistence_error(tmp_path):
    # A database without the activity_logs table stands in for a broken store.
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'empty.db'}")
    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    actor_id = uuid.uuid4()
    try:
        async with factory() as session:
            service = ActivityLogService(session)
            with pytest.raises(PersistenceError) as exc_info:
                await service.append(
                    actor_id, "approved", "swap_request", "swap-1", {"on": date(2026, 10, 18)}
                )
    finally:
        await engine.dispose()

    error = exc_info.value
    assert error.code == "PERSISTENCE_ERROR"
    assert error.context == {
        "actor_user_id": str(actor_id),
        "action": "approved",
        "entity_type": "swap_request",
        "entity_id": "swap-1",
        "details": {"on": "2026-10-18"},
    }


def test_sanitize_details_makes_values_json_safe():
    swap_id = uuid.uuid4()

    details = sanitize_details(
        {
            "swap_id": swap_id,
            "status": SwapStatus.pending,
            "when": datetime(2026, 10, 18, 9, 30, tzinfo=UTC),
            "start": time(9, 0),
            "names": ("Alice", "Bob"),
            "nested": {"day": date(2026, 10, 18)},
        }
    )

    assert details == {
        "swap_id": str(swap_id),
        "status": "Pending",
        "when": "2026-10-18T09:30:00+00:00",
        "start": "09:00:00",
        "names": ["Alice", "Bob"],
        "nested": {"day": "2026-10-18"},
    }
    assert sanitize_details(None) is None


# ---------------------------------------------------------------------------
# Query
# ---------------------------------------------------------------------------

async def test_query_pages_newest_first(db_session, staff):
    alice = staff["alice"].id
    seeded = [await _seed(db_session, actor_id=alice, created_at=_at(day)) for day in range(1, 6)]
    service = ActivityLogService(db_session)

    first = await service.query(page=1, page_size=2)
    last = await service.query(page=3, page_size=2)

    assert first.total == 5
    assert [item.id for item in first.items] == [seeded[4].id, seeded[3].id]
    assert first.items[0].actor_name == "Alice"
    assert [item.id for item in last.items] == [seeded[0].id]
    assert last.page == 3


async def test_query_breaks_timestamp_ties_by_id(db_session, staff):
    same_moment = _at(5)
    older = await _seed(db_session, actor_id=staff["alice"].id, created_at=same_moment)
    newer = await _seed(db_session, actor_id=staff["alice"].id, created_at=same_moment)

    page = await ActivityLogService(db_session).query()

    assert [item.id for item in page.items] == [newer.id, older.id]


async def test_query_clamps_page_size(db_session):
    page = await ActivityLogService(db_session).query(page=0, page_size=10_000)

    assert page.page == 1
    assert page.page_size == settings.ACTIVITY_LOG_MAX_PAGE_SIZE
    assert page.total == 0
    assert page.items == []


async def test_query_filters_by_actor(db_session, staff):
    await _seed(db_session, actor_id=staff["alice"].id, created_at=_at(1))
    bobs = await _seed(db_session, actor_id=staff["bob"].id, created_at=_at(2))

    page = await ActivityLogService(db_session).query(actor_id=staff["bob"].id)

    assert [item.id for item in page.items] == [bobs.id]
    assert page.items[0].actor_name == "Bob"


async def test_query_date_range_covers_whole_days(db_session, staff):
    alice = staff["alice"].id
    await _seed(db_session, actor_id=alice, created_at=_at(9, 23))
    early = await _seed(db_session, actor_id=alice, created_at=_at(10, 0))
    late = await _seed(db_session, actor_id=alice, created_at=_at(11, 23))
    await _seed(db_session, actor_id=alice, created_at=_at(12, 0))

    page = await ActivityLogService(db_session).query(
        date_from=date(2026, 10, 10), date_to=date(2026, 10, 11)
    )

    assert [item.id for item in page.items] == [late.id, early.id]


async def test_query_filters_by_entity(db_session, staff):
    alice = staff["alice"].id
    target = await _seed(db_session, actor_id=alice, created_at=_at(1), entity_id="swap-a")
    await _seed(db_session, actor_id=alice, created_at=_at(2), entity_id="swap-b")

    page = await ActivityLogService(db_session).query(
        entity_type="swap_request", entity_id="swap-a"
    )

    assert [item.id for item in page.items] == [target.id]


async def test_export_rows_returns_every_match(db_session, staff):
    for day in range(1, 31):
        await _seed(db_session, actor_id=staff["carol"].id, created_at=_at(day))

    rows = await ActivityLogService(db_session).export_rows(date_from=date(2026, 10, 5))

    assert len(rows) == 26
    assert rows[0].created_at.day == 30
