"""Race-safe insert-if-absent on a uniqueness constraint.

Both PostgreSQL and SQLite support ``INSERT ... ON CONFLICT DO NOTHING``
with ``RETURNING``.  A conflicting concurrent insert therefore resolves at
the storage layer: the losing caller gets ``None`` back and reads the
winning row instead of seeing an error.
"""

from __future__ import annotations

from typing import Any

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

_DIALECT_INSERTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


async def insert_if_absent(
    session: AsyncSession,
    model: type,
    values: dict[str, Any],
    conflict_columns: list[str],
    conflict_where: sa.ColumnElement[bool] | None = None,
) -> int | None:
    """Insert a row unless it would violate the given unique key.

    Args:
        session: Active async session (within a transaction).
        model: Mapped class with an integer ``id`` primary key.
        values: Column values for the new row.
        conflict_columns: Columns of the unique constraint or index.
        conflict_where: Predicate of a partial unique index, if any.

    Returns:
        The new row's id, or ``None`` when an existing row won the conflict.
    """
    dialect = session.bind.dialect.name
    try:
        insert = _DIALECT_INSERTS[dialect]
    except KeyError:
        raise NotImplementedError(f"insert_if_absent does not support dialect '{dialect}'") from None

    stmt = (
        insert(model)
        .values(**values)
        .on_conflict_do_nothing(index_elements=conflict_columns, index_where=conflict_where)
        .returning(model.id)
    )
    result = await session.execute(stmt)
    return result.scalar_one_or_none()
