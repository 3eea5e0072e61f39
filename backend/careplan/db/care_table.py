"""Key-value access to the ``care_items`` table.

These helpers are the storage capability the services consume: point
reads, deduplicating batch reads, puts, chunked batch puts and single-key
conditional updates. Every write helper commits its own transaction;
``batch_put_items`` commits once per chunk, so a failure part-way through
leaves the earlier chunks persisted.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping, Sequence
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from careplan.db.keys import ItemKey
from careplan.models.care_item import CareItem, DoseStatus, RecordType

logger = logging.getLogger(__name__)

BATCH_WRITE_LIMIT = 25
BATCH_GET_LIMIT = 100


def _chunks(items: Sequence[Any], size: int) -> Iterable[Sequence[Any]]:
    for start in range(0, len(items), size):
        yield items[start : start + size]


def item_key(item: CareItem) -> ItemKey:
    return ItemKey(item.pk, item.sk)


async def get_item(session: AsyncSession, key: ItemKey) -> CareItem | None:
    """Return the item stored under ``key`` or ``None``."""
    return await session.get(CareItem, (key.pk, key.sk))


async def batch_get_items(
    session: AsyncSession,
    keys: Iterable[ItemKey],
    *,
    chunk_size: int = BATCH_GET_LIMIT,
) -> list[CareItem]:
    """Fetch every existing item among ``keys``.

    Duplicate keys are collapsed and absent keys are ignored. Results are
    returned partition by partition in sort-key order.
    """
    by_partition: dict[str, list[str]] = {}
    for key in dict.fromkeys(keys):
        by_partition.setdefault(key.pk, []).append(key.sk)

    items: list[CareItem] = []
    for pk, sort_keys in by_partition.items():
        for chunk in _chunks(sort_keys, chunk_size):
            stmt = (
                select(CareItem)
                .where(CareItem.pk == pk, CareItem.sk.in_(chunk))
                .order_by(CareItem.sk)
            )
            result = await session.execute(stmt)
            items.extend(result.scalars().all())
    return items


async def query_partition(
    session: AsyncSession,
    pk: str,
    *,
    sk_prefix: str,
    status: DoseStatus | None = None,
    due_at_from: str | None = None,
) -> list[CareItem]:
    """Return the items of one partition whose sort key starts with ``sk_prefix``."""
    stmt = select(CareItem).where(
        CareItem.pk == pk,
        CareItem.sk.startswith(sk_prefix, autoescape=True),
    )
    if status is not None:
        stmt = stmt.where(CareItem.status == status)
    if due_at_from is not None:
        stmt = stmt.where(CareItem.due_at >= due_at_from)
    result = await session.execute(stmt.order_by(CareItem.sk))
    return list(result.scalars().all())


async def put_item(session: AsyncSession, item: CareItem) -> CareItem:
    """Create or replace a single item."""
    try:
        stored = await session.merge(item)
        await session.commit()
    except SQLAlchemyError:
        await session.rollback()
        raise
    return stored


async def _existing_keys(session: AsyncSession, keys: Sequence[ItemKey]) -> set[ItemKey]:
    return {item_key(item) for item in await batch_get_items(session, keys)}


async def batch_put_items(
    session: AsyncSession,
    items: Sequence[CareItem],
    *,
    chunk_size: int = BATCH_WRITE_LIMIT,
    if_absent: bool = False,
) -> int:
    """Write ``items`` in chunks of at most ``chunk_size``.

    Each chunk is committed on its own. With ``if_absent`` items whose key
    already exists are skipped instead of replaced. Returns the number of
    items written.
    """
    if chunk_size < 1 or chunk_size > BATCH_WRITE_LIMIT:
        raise ValueError(f"chunk_size must be between 1 and {BATCH_WRITE_LIMIT}")

    written = 0
    for index, chunk in enumerate(_chunks(items, chunk_size)):
        pending = list(chunk)
        if if_absent:
            existing = await _existing_keys(session, [item_key(item) for item in pending])
            pending = [item for item in pending if item_key(item) not in existing]
        try:
            for item in pending:
                await session.merge(item)
            await session.commit()
        except SQLAlchemyError:
            await session.rollback()
            logger.error(
                "Batch write failed at chunk %s after %s item(s) were written",
                index,
                written,
            )
            raise
        written += len(pending)
    return written


async def conditional_update(
    session: AsyncSession,
    key: ItemKey,
    values: Mapping[str, Any],
    *,
    required_status: DoseStatus,
) -> CareItem | None:
    """Apply ``values`` only if the stored status equals ``required_status``.

    The check and the write are one ``UPDATE ... WHERE`` statement, so
    concurrent callers cannot both succeed. Returns the updated item, or
    ``None`` when the item is absent or its status does not match.
    """
    stmt = (
        update(CareItem)
        .where(
            CareItem.pk == key.pk,
            CareItem.sk == key.sk,
            CareItem.status == required_status,
        )
        .values(**values)
        .returning(CareItem)
    )
    try:
        result = await session.execute(stmt)
        updated = result.scalars().one_or_none()
        await session.commit()
    except SQLAlchemyError:
        await session.rollback()
        raise
    return updated


async def update_item(
    session: AsyncSession,
    key: ItemKey,
    values: Mapping[str, Any],
    *,
    record_type: RecordType | None = None,
) -> CareItem | None:
    """Update an existing item; returns ``None`` instead of creating one."""
    stmt = update(CareItem).where(CareItem.pk == key.pk, CareItem.sk == key.sk)
    if record_type is not None:
        stmt = stmt.where(CareItem.record_type == record_type)
    try:
        result = await session.execute(stmt.values(**values).returning(CareItem))
        updated = result.scalars().one_or_none()
        await session.commit()
    except SQLAlchemyError:
        await session.rollback()
        raise
    return updated


__all__ = [
    "BATCH_GET_LIMIT",
    "BATCH_WRITE_LIMIT",
    "batch_get_items",
    "batch_put_items",
    "conditional_update",
    "get_item",
    "item_key",
    "put_item",
    "query_partition",
    "update_item",
]
