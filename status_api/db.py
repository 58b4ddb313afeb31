"""
Async Postgres store for status-governed documents: orders, purchase orders, GRNs, return orders.
Status writes are conditional on the status the caller read (compare-and-swap), so a concurrent
writer that got there first surfaces as StatusConflict instead of being silently overwritten.
"""
import json
import uuid
from datetime import datetime, timezone

import asyncpg

from status_api.config import settings
from status_api.status_policy import (
    FULFILMENT_ORDER,
    GRN,
    LIFECYCLE_ORDER,
    PURCHASE_ORDER,
    RETURN_ORDER,
    StatusError,
)

_pool: asyncpg.Pool | None = None

# kind -> (table, status column)
TABLES: dict[str, tuple[str, str]] = {
    FULFILMENT_ORDER: ("fulfilment_orders", "status"),
    LIFECYCLE_ORDER: ("orders", "status"),
    PURCHASE_ORDER: ("purchase_orders", "po_status"),
    GRN: ("goods_receipt_notes", "status"),
    RETURN_ORDER: ("return_orders", "status"),
}

# Extra columns a status write may set alongside the status
EXTRA_COLUMNS = frozenset({"status_reason", "delivery_boy_id"})

NOT_FOUND_MESSAGES: dict[str, str] = {
    FULFILMENT_ORDER: "Order not found",
    LIFECYCLE_ORDER: "Order not found",
    PURCHASE_ORDER: "Purchase order not found",
    GRN: "GRN not found",
    RETURN_ORDER: "Return order not found",
}


class NotFound(StatusError):
    """Target document, or the parent it references, does not exist."""

    status_code = 404


class StatusConflict(StatusError):
    """Stored status changed between read and conditional write."""

    status_code = 409

    def __init__(self, kind: str, expected: str, actual: str):
        self.kind = kind
        self.expected = expected
        self.actual = actual
        super().__init__(f"Status changed concurrently (expected '{expected}', found '{actual}')")


def not_found(kind: str) -> NotFound:
    return NotFound(NOT_FOUND_MESSAGES[kind])


async def _init_connection(conn: asyncpg.Connection) -> None:
    await conn.set_type_codec("jsonb", encoder=json.dumps, decoder=json.loads, schema="pg_catalog")


async def create_pool(database_url: str) -> asyncpg.Pool:
    return await asyncpg.create_pool(
        database_url,
        min_size=settings.db_pool_min_size,
        max_size=settings.db_pool_max_size,
        command_timeout=settings.db_command_timeout,
        init=_init_connection,
    )


async def get_pool() -> asyncpg.Pool:
    global _pool
    if _pool is None:
        _pool = await create_pool(settings.database_url)
    return _pool


async def close_pool() -> None:
    global _pool
    if _pool is not None:
        await _pool.close()
        _pool = None


async def init_schema(pool: asyncpg.Pool) -> None:
    async with pool.acquire() as conn:
        await conn.execute("""
            CREATE TABLE IF NOT EXISTS fulfilment_orders (
                id TEXT PRIMARY KEY,
                customer_id TEXT,
                status VARCHAR(20) NOT NULL DEFAULT 'Received',
                created_at TIMESTAMPTZ DEFAULT NOW(),
                updated_at TIMESTAMPTZ DEFAULT NOW()
            );
        """)
        await conn.execute("""
            CREATE TABLE IF NOT EXISTS orders (
                id TEXT PRIMARY KEY,
                customer_id TEXT,
                delivery_boy_id TEXT,
                status VARCHAR(20) NOT NULL DEFAULT 'pending',
                status_reason TEXT,
                created_at TIMESTAMPTZ DEFAULT NOW(),
                updated_at TIMESTAMPTZ DEFAULT NOW()
            );
        """)
        await conn.execute("""
            CREATE TABLE IF NOT EXISTS purchase_orders (
                id TEXT PRIMARY KEY,
                vendor_id TEXT,
                po_status VARCHAR(20) NOT NULL DEFAULT 'Draft',
                inbound_status VARCHAR(20) NOT NULL DEFAULT 'Created',
                created_at TIMESTAMPTZ DEFAULT NOW(),
                updated_at TIMESTAMPTZ DEFAULT NOW()
            );
        """)
        await conn.execute("""
            CREATE TABLE IF NOT EXISTS purchase_order_items (
                id TEXT PRIMARY KEY,
                po_id TEXT NOT NULL REFERENCES purchase_orders(id) ON DELETE CASCADE,
                article_id TEXT NOT NULL,
                cost_price NUMERIC NOT NULL,
                mrp NUMERIC NOT NULL,
                gst_percentage NUMERIC NOT NULL DEFAULT 0,
                ordered_quantity INT NOT NULL,
                received_quantity INT NOT NULL DEFAULT 0,
                created_at TIMESTAMPTZ DEFAULT NOW()
            );
        """)
        await conn.execute("""
            CREATE TABLE IF NOT EXISTS goods_receipt_notes (
                id TEXT PRIMARY KEY,
                po_id TEXT NOT NULL REFERENCES purchase_orders(id),
                status VARCHAR(20) NOT NULL DEFAULT 'Received',
                received_date TIMESTAMPTZ NOT NULL DEFAULT NOW(),
                created_at TIMESTAMPTZ DEFAULT NOW(),
                updated_at TIMESTAMPTZ DEFAULT NOW()
            );
        """)
        await conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_goods_receipt_notes_po_id
            ON goods_receipt_notes(po_id);
        """)
        await conn.execute("""
            CREATE TABLE IF NOT EXISTS return_orders (
                id TEXT PRIMARY KEY,
                order_id TEXT NOT NULL,
                status VARCHAR(20) NOT NULL DEFAULT 'Received',
                created_at TIMESTAMPTZ DEFAULT NOW(),
                updated_at TIMESTAMPTZ DEFAULT NOW()
            );
        """)


class PostgresStore:
    """Document reads and conditional status writes over an asyncpg pool."""

    def __init__(self, pool: asyncpg.Pool):
        self.pool = pool

    async def fetch_document(self, kind: str, doc_id: str) -> dict | None:
        table, _ = TABLES[kind]
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(f"SELECT * FROM {table} WHERE id = $1;", doc_id)
        return dict(row) if row is not None else None

    async def compare_and_set_status(
        self,
        kind: str,
        doc_id: str,
        expected: str,
        new: str,
        extra: dict | None = None,
    ) -> dict:
        """
        UPDATE ... WHERE id = $id AND <status> = $expected RETURNING *.
        Raises NotFound if the row is gone, StatusConflict if its status moved on.
        """
        table, column = TABLES[kind]
        extra = extra or {}
        unknown = set(extra) - EXTRA_COLUMNS
        if unknown:
            raise ValueError(f"Unsupported columns: {sorted(unknown)}")

        assignments = [f"{column} = $1", "updated_at = NOW()"]
        args: list = [new]
        for name, value in extra.items():
            args.append(value)
            assignments.append(f"{name} = ${len(args)}")
        args.extend([doc_id, expected])
        id_param, expected_param = len(args) - 1, len(args)

        async with self.pool.acquire() as conn:
            async with conn.transaction():
                row = await conn.fetchrow(
                    f"""
                    UPDATE {table} SET {", ".join(assignments)}
                    WHERE id = ${id_param} AND {column} = ${expected_param}
                    RETURNING *;
                    """,
                    *args,
                )
                if row is not None:
                    return dict(row)
                actual = await conn.fetchval(f"SELECT {column} FROM {table} WHERE id = $1;", doc_id)
        if actual is None:
            raise not_found(kind)
        raise StatusConflict(kind, expected, actual)

    async def set_inbound_status(self, po_id: str, status: str) -> bool:
        """Cascade write on a purchase order. Returns False if the purchase order no longer exists."""
        async with self.pool.acquire() as conn:
            result = await conn.execute(
                "UPDATE purchase_orders SET inbound_status = $1, updated_at = NOW() WHERE id = $2;",
                status,
                po_id,
            )
        return result != "UPDATE 0"

    async def insert_grn(self, po_id: str, status: str, received_date: datetime | None = None) -> dict:
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                """
                INSERT INTO goods_receipt_notes (id, po_id, status, received_date)
                VALUES ($1, $2, $3, $4)
                RETURNING *;
                """,
                str(uuid.uuid4()),
                po_id,
                status,
                received_date or datetime.now(timezone.utc),
            )
        return dict(row)

    async def list_grns(
        self,
        po_id: str | None = None,
        status: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[dict], int]:
        """GRNs newest first, each with its purchase order embedded; returns (page, total count)."""
        conditions = []
        args: list = []
        if po_id:
            args.append(po_id)
            conditions.append(f"g.po_id = ${len(args)}")
        if status:
            args.append(status)
            conditions.append(f"g.status = ${len(args)}")
        where = f"WHERE {' AND '.join(conditions)}" if conditions else ""

        async with self.pool.acquire() as conn:
            count = await conn.fetchval(f"SELECT COUNT(*) FROM goods_receipt_notes g {where};", *args)
            rows = await conn.fetch(
                f"""
                SELECT g.*, to_jsonb(p.*) AS purchase_orders
                FROM goods_receipt_notes g
                LEFT JOIN purchase_orders p ON p.id = g.po_id
                {where}
                ORDER BY g.created_at DESC
                LIMIT ${len(args) + 1} OFFSET ${len(args) + 2};
                """,
                *args,
                limit,
                offset,
            )
        return [dict(r) for r in rows], count

    async def fetch_purchase_order(self, po_id: str) -> dict | None:
        """Purchase order with its line items under purchase_order_items."""
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                """
                SELECT p.*,
                       COALESCE(
                           (SELECT jsonb_agg(to_jsonb(i.*) ORDER BY i.created_at)
                            FROM purchase_order_items i WHERE i.po_id = p.id),
                           '[]'::jsonb
                       ) AS purchase_order_items
                FROM purchase_orders p
                WHERE p.id = $1;
                """,
                po_id,
            )
        return dict(row) if row is not None else None


async def get_store() -> PostgresStore:
    """FastAPI dependency; tests override it with an in-memory store."""
    return PostgresStore(await get_pool())
