import logging
from functools import lru_cache
from typing import Any, Dict, List, Optional

from anyio import to_thread
from supabase import create_client, Client

from app.core.config import settings
from app.core.errors import DataServiceError

logger = logging.getLogger(__name__)


class DataService:
    """Generic table operations against the Supabase project.

    The supabase client is synchronous, so every call is pushed to a worker
    thread and independent reads can be awaited together.
    """

    def __init__(self, client: Client):
        self.client = client

    async def query(
        self,
        table: str,
        columns: str = "*",
        filters: Optional[Dict[str, Any]] = None,
        order_by: Optional[str] = None,
        desc: bool = False,
        limit: Optional[int] = None,
        then_by: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        def run():
            request = self.client.table(table).select(columns)
            for column, value in (filters or {}).items():
                request = request.eq(column, value)
            if order_by:
                request = request.order(order_by, desc=desc)
            if then_by:
                # ascending tie-break, applied before the limit
                request = request.order(then_by)
            if limit is not None:
                request = request.limit(limit)
            return request.execute()

        result = await self._call("query", table, run)
        return result.data or []

    async def insert(self, table: str, row: Dict[str, Any]) -> Dict[str, Any]:
        def run():
            return self.client.table(table).insert(row).execute()

        result = await self._call("insert", table, run)
        if not result.data:
            raise DataServiceError("insert", table)
        return result.data[0]

    async def update(
        self, table: str, filters: Dict[str, Any], patch: Dict[str, Any]
    ) -> Optional[Dict[str, Any]]:
        def run():
            request = self.client.table(table).update(patch)
            for column, value in filters.items():
                request = request.eq(column, value)
            return request.execute()

        result = await self._call("update", table, run)
        return result.data[0] if result.data else None

    async def count(
        self,
        table: str,
        filters: Optional[Dict[str, Any]] = None,
        greater_than: Optional[Dict[str, Any]] = None,
    ) -> int:
        def run():
            request = self.client.table(table).select("id", count="exact")
            for column, value in (filters or {}).items():
                request = request.eq(column, value)
            for column, value in (greater_than or {}).items():
                request = request.gt(column, value)
            return request.execute()

        result = await self._call("count", table, run)
        return result.count or 0

    async def _call(self, operation: str, table: str, run):
        try:
            return await to_thread.run_sync(run)
        except Exception as exc:
            logger.debug("%s on %s raised %r", operation, table, exc)
            raise DataServiceError(operation, table, exc) from exc


@lru_cache()
def get_client() -> Client:
    return create_client(settings.supabase_url, settings.supabase_key)


# Dependency for getting the data service
async def get_database() -> DataService:
    return DataService(get_client())


async def no_rows() -> list:
    """Stand-in read for callers without an identity."""
    return []
