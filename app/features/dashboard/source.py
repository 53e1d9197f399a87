"""Record sources: the external collaborators that supply raw rows.

Provides two read operations against a named tabular collection:
- ``fetch_records``: bulk scan of month/store/metric rows
- ``fetch_store_directory``: distinct store id/name rows ordered by store id

Backends:
- PostgREST (Supabase REST API) over httpx
- SQL database via SQLAlchemy async
- In-memory rows for tests and demos

CRITICAL: Every transport, status and auth failure surfaces as
DataFetchError. Sources never retry; the caller re-triggers a refresh.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Mapping, Sequence
from typing import TYPE_CHECKING, Any

import httpx
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from app.core.database import create_engine_from_settings, create_session_maker
from app.core.exceptions import DataFetchError
from app.core.logging import get_logger
from app.features.dashboard.models import store_level_table
from app.features.dashboard.normalize import (
    DIRECTORY_COLUMNS,
    RECORD_COLUMNS,
    STORE_ID_COLUMN,
)

if TYPE_CHECKING:
    from app.core.config import Settings

logger = get_logger(__name__)

Row = Mapping[str, Any]


class RecordSource(ABC):
    """Abstract base class for record sources."""

    @abstractmethod
    async def fetch_records(self) -> list[Row]:
        """Return every month/store/metric row.

        Raises:
            DataFetchError: If the backend cannot be read.
        """
        ...

    @abstractmethod
    async def fetch_store_directory(self) -> list[Row]:
        """Return store id/name rows ordered by store id.

        Raises:
            DataFetchError: If the backend cannot be read.
        """
        ...

    async def aclose(self) -> None:
        """Release backend resources."""
        return None


# =============================================================================
# PostgREST (Supabase)
# =============================================================================


class PostgrestRecordSource(RecordSource):
    """Record source reading a Supabase/PostgREST table over HTTP.

    Issues ``GET {base_url}/rest/v1/{table}?select=...`` with the anon key
    as both ``apikey`` header and bearer token.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str,
        table_name: str,
        timeout_seconds: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the PostgREST source.

        Args:
            base_url: Project URL, e.g. ``https://xyz.supabase.co``.
            api_key: Anon (or service) key.
            table_name: Table to read.
            timeout_seconds: Per-request timeout.
            client: Pre-built client (tests inject one with a mock transport).
        """
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.table_name = table_name
        self.timeout_seconds = timeout_seconds
        self._client = client
        self._owns_client = client is None

    def _get_client(self) -> httpx.AsyncClient:
        """Get or create the async HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=httpx.Timeout(self.timeout_seconds, connect=10.0),
                headers={
                    "apikey": self.api_key,
                    "Authorization": f"Bearer {self.api_key}",
                    "Accept": "application/json",
                },
            )
        return self._client

    async def _select(self, columns: Sequence[str], order: str | None = None) -> list[Row]:
        params = {"select": ",".join(columns)}
        if order is not None:
            params["order"] = order
        path = f"/rest/v1/{self.table_name}"

        try:
            response = await self._get_client().get(path, params=params)
        except httpx.HTTPError as e:
            logger.error(
                "source.fetch_failed",
                backend="postgrest",
                table=self.table_name,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise DataFetchError(
                f"Could not reach record source: {e}",
                details={"table": self.table_name},
            ) from e

        if response.is_error:
            message = _error_message(response)
            logger.error(
                "source.fetch_failed",
                backend="postgrest",
                table=self.table_name,
                status_code=response.status_code,
                error=message,
            )
            raise DataFetchError(
                f"Record source returned {response.status_code}: {message}",
                details={"table": self.table_name, "status_code": response.status_code},
            )

        try:
            payload = response.json()
        except ValueError as e:
            raise DataFetchError(
                "Record source returned invalid JSON",
                details={"table": self.table_name},
            ) from e
        if not isinstance(payload, list):
            raise DataFetchError(
                "Record source returned an unexpected payload",
                details={"table": self.table_name},
            )
        logger.debug("source.fetch_completed", backend="postgrest", row_count=len(payload))
        return payload

    async def fetch_records(self) -> list[Row]:
        return await self._select(RECORD_COLUMNS)

    async def fetch_store_directory(self) -> list[Row]:
        return await self._select(DIRECTORY_COLUMNS, order=f"{STORE_ID_COLUMN}.asc")

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
        self._client = None


def _error_message(response: httpx.Response) -> str:
    """Extract PostgREST's error message, falling back to the reason phrase."""
    try:
        body = response.json()
    except ValueError:
        return response.reason_phrase or "unknown error"
    if isinstance(body, dict):
        return str(body.get("message") or body.get("error") or body)
    return str(body)


# =============================================================================
# SQL database
# =============================================================================


class DatabaseRecordSource(RecordSource):
    """Record source reading the store-level table through SQLAlchemy.

    Columns come from ``StoreLevelRow``; only the table name is configurable.
    """

    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession],
        table_name: str,
    ) -> None:
        self.session_maker = session_maker
        self.table_name = table_name
        self._table = store_level_table(table_name)

    async def _select(self, columns: Sequence[str], order_by: str | None = None) -> list[Row]:
        stmt = select(*(self._table.c[name] for name in columns))
        if order_by is not None:
            stmt = stmt.order_by(self._table.c[order_by])

        try:
            async with self.session_maker() as session:
                result = await session.execute(stmt)
                rows = [dict(row) for row in result.mappings().all()]
        except SQLAlchemyError as e:
            logger.error(
                "source.fetch_failed",
                backend="database",
                table=self.table_name,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise DataFetchError(
                f"Could not read record source table '{self.table_name}': {e}",
                details={"table": self.table_name},
            ) from e

        logger.debug("source.fetch_completed", backend="database", row_count=len(rows))
        return rows

    async def fetch_records(self) -> list[Row]:
        return await self._select(RECORD_COLUMNS)

    async def fetch_store_directory(self) -> list[Row]:
        return await self._select(DIRECTORY_COLUMNS, order_by=STORE_ID_COLUMN)


# =============================================================================
# In-memory
# =============================================================================


class StaticRecordSource(RecordSource):
    """Record source serving fixed rows.

    Directory rows default to the record rows themselves.
    """

    def __init__(
        self,
        records: Sequence[Row],
        directory: Sequence[Row] | None = None,
    ) -> None:
        self.records = list(records)
        self.directory = list(directory) if directory is not None else list(records)

    async def fetch_records(self) -> list[Row]:
        return [dict(row) for row in self.records]

    async def fetch_store_directory(self) -> list[Row]:
        return sorted(
            (dict(row) for row in self.directory),
            key=lambda row: str(row.get(STORE_ID_COLUMN) or ""),
        )


# =============================================================================
# Factory
# =============================================================================


def build_record_source(settings: Settings) -> tuple[RecordSource, AsyncEngine | None]:
    """Create the record source for the configured backend.

    Args:
        settings: Application settings.

    Returns:
        The source, plus the engine it owns when the database backend is used.
        The caller disposes the engine on shutdown.
    """
    if settings.record_source_backend == "database":
        engine = create_engine_from_settings(settings)
        return DatabaseRecordSource(create_session_maker(engine), settings.source_table), engine

    source = PostgrestRecordSource(
        base_url=settings.supabase_url,
        api_key=settings.supabase_anon_key,
        table_name=settings.source_table,
        timeout_seconds=settings.source_timeout_seconds,
    )
    return source, None
