"""
Supabase Client Helper for the GS Performance Dashboard.
Provides the connection and thin table helpers around performance_data.

Usage:
    from scripts.lib.config import SupabaseConfig
    from scripts.lib.supabase_client import get_client, upsert_rows

    client = get_client(SupabaseConfig.from_env())
    upsert_rows(client, "performance_data", rows, on_conflict="user_id,date")
"""
from typing import Any, Dict, List, Optional

from scripts.lib.config import SupabaseConfig
from scripts.lib.errors import DataFetchError, PersistenceError
from scripts.lib.logger import setup_logger

logger = setup_logger(__name__)

PERFORMANCE_TABLE = "performance_data"

_clients: Dict[str, Any] = {}


def get_client(config: SupabaseConfig):
    """Create (once per project URL) and return a Supabase client."""
    client = _clients.get(config.url)
    if client is not None:
        return client

    from supabase import create_client
    client = create_client(config.url, config.key)
    _clients[config.url] = client
    logger.info("Supabase client connected to %s", config.url)
    return client


def upsert_rows(
    client,
    table: str,
    rows: List[Dict],
    on_conflict: Optional[str] = None,
) -> int:
    """
    Upsert multiple rows into a table, overwriting rows that match on
    `on_conflict`.

    Returns:
        Number of rows written.

    Raises:
        PersistenceError: If the request fails.
    """
    if not rows:
        return 0

    try:
        query = client.table(table)
        if on_conflict:
            query.upsert(rows, on_conflict=on_conflict, ignore_duplicates=False).execute()
        else:
            query.insert(rows).execute()
    except Exception as e:
        logger.error("Supabase bulk upsert failed on %s: %s", table, e)
        raise PersistenceError(str(e), table=table)

    logger.info("Upserted %d rows into %s", len(rows), table)
    return len(rows)


def query_table(
    client,
    table: str,
    select: str = "*",
    filters: Dict[str, Any] = None,
    gte: Dict[str, Any] = None,
    lte: Dict[str, Any] = None,
    order_by: str = None,
    desc: bool = True,
    limit: int = None,
) -> List[Dict]:
    """
    Query a Supabase table with optional equality/range filters and ordering.

    Raises:
        DataFetchError: If the query fails.
    """
    try:
        query = client.table(table).select(select)
        for col, val in (filters or {}).items():
            query = query.eq(col, val)
        for col, val in (gte or {}).items():
            query = query.gte(col, val)
        for col, val in (lte or {}).items():
            query = query.lte(col, val)
        if order_by:
            query = query.order(order_by, desc=desc)
        if limit:
            query = query.limit(limit)
        result = query.execute()
        return result.data or []
    except Exception as e:
        logger.error("Supabase query failed on %s: %s", table, e)
        raise DataFetchError(str(e), source=table)


# PostgREST returns at most this many rows per request by default
QUERY_CHUNK_SIZE = 1000


def query_all(
    client,
    table: str,
    select: str = "*",
    filters: Dict[str, Any] = None,
    gte: Dict[str, Any] = None,
    lte: Dict[str, Any] = None,
    order_by: str = None,
    desc: bool = True,
    then_by: str = None,
    chunk_size: int = QUERY_CHUNK_SIZE,
) -> List[Dict]:
    """
    Fetch every matching row, paging with .range() in `chunk_size` chunks
    until a short page comes back. `then_by` breaks ties in `order_by` so
    pages do not overlap or skip rows.

    Raises:
        DataFetchError: If any page fails.
    """
    all_rows: List[Dict] = []
    offset = 0
    while True:
        try:
            query = client.table(table).select(select)
            for col, val in (filters or {}).items():
                query = query.eq(col, val)
            for col, val in (gte or {}).items():
                query = query.gte(col, val)
            for col, val in (lte or {}).items():
                query = query.lte(col, val)
            if order_by:
                query = query.order(order_by, desc=desc)
            if then_by:
                query = query.order(then_by)
            result = query.range(offset, offset + chunk_size - 1).execute()
        except Exception as e:
            logger.error("Supabase query failed on %s at offset %d: %s", table, offset, e)
            raise DataFetchError(str(e), source=table)

        page = result.data or []
        all_rows.extend(page)
        if len(page) < chunk_size:
            break
        offset += chunk_size
    return all_rows
