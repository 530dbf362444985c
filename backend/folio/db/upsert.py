from __future__ import annotations

from collections.abc import Sequence
from typing import Any

from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

# Keeps multi-row inserts under SQLite's bound-parameter limit.
_BATCH_SIZE = 100


async def upsert_rows(
    session: AsyncSession,
    model: Any,
    rows: Sequence[dict[str, Any]],
    index_elements: Sequence[str],
) -> None:
    """Insert rows, overwriting any row sharing the natural key in ``index_elements``."""
    if not rows:
        return
    dialect = session.get_bind().dialect.name
    insert = pg_insert if dialect == "postgresql" else sqlite_insert
    for start in range(0, len(rows), _BATCH_SIZE):
        batch = list(rows[start : start + _BATCH_SIZE])
        stmt = insert(model).values(batch)
        update_columns = {
            name: stmt.excluded[name] for name in batch[0] if name not in index_elements
        }
        stmt = stmt.on_conflict_do_update(
            index_elements=list(index_elements), set_=update_columns
        )
        await session.execute(stmt)
