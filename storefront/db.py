from contextlib import contextmanager
from typing import Optional
import psycopg
from psycopg.rows import dict_row
from . import settings

SCHEMA_STATEMENTS = (
    """
    CREATE TABLE IF NOT EXISTS orders (
        id TEXT PRIMARY KEY,
        session_id TEXT NOT NULL,
        payment_intent_id TEXT,
        user_id TEXT,
        customer_email TEXT NOT NULL DEFAULT '',
        products JSONB NOT NULL DEFAULT '[]'::jsonb,
        subtotal_minor_units BIGINT NOT NULL CHECK (subtotal_minor_units >= 0),
        shipping_cost_minor_units BIGINT NOT NULL CHECK (shipping_cost_minor_units >= 0),
        shipping_name TEXT NOT NULL,
        total_minor_units BIGINT NOT NULL,
        currency TEXT NOT NULL,
        status TEXT NOT NULL
            CHECK (status IN ('pending', 'paid', 'processing', 'shipped', 'delivered', 'cancelled')),
        shipping_address JSONB,
        created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
        updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
        CONSTRAINT orders_session_id_key UNIQUE (session_id),
        CONSTRAINT orders_balanced CHECK (subtotal_minor_units + shipping_cost_minor_units = total_minor_units)
    )
    """,
    "CREATE INDEX IF NOT EXISTS orders_user_id_created_at_idx ON orders (user_id, created_at DESC)",
    "CREATE INDEX IF NOT EXISTS orders_created_at_idx ON orders (created_at DESC)",
)


@contextmanager
def get_conn(database_url: Optional[str] = None):
    conn = psycopg.connect(database_url or settings.DATABASE_URL, row_factory=dict_row)
    try:
        yield conn
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()


def init_schema(database_url: Optional[str] = None) -> None:
    """Create the orders table; the unique session_id constraint is what makes order creation idempotent."""
    with get_conn(database_url) as conn:
        for statement in SCHEMA_STATEMENTS:
            conn.execute(statement)


if __name__ == "__main__":
    init_schema()
