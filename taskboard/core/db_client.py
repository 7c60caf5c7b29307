"""SQLite database client wrapper with CRUD operations."""

import asyncio
import json
import logging
import re
import threading
import weakref
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import aiosqlite

from taskboard.core.config import settings


logger = logging.getLogger(__name__)


class DatabaseError(RuntimeError):
    """Raised when a storage operation fails."""


class RecordNotFoundError(KeyError):
    """Raised when a record does not exist."""


class VersionConflictError(DatabaseError):
    """Raised when a versioned update finds the record was changed concurrently."""


def _validate_collection_name(collection: str) -> None:
    """Validate that a collection name contains only alphanumeric characters and underscores."""
    if not re.match(r"^[a-zA-Z_][a-zA-Z0-9_]*$", collection):
        msg = f"Invalid collection name: {collection}. Only alphanumeric characters and underscores are allowed."
        raise ValueError(msg)


def _convert_record_ids(record: dict[str, Any]) -> dict[str, Any]:
    """Convert the integer primary key to a string for Pydantic compatibility."""
    converted = record.copy()
    if isinstance(converted.get("id"), int):
        converted["id"] = str(converted["id"])
    return converted


def _encode_value(value: Any) -> Any:  # noqa: ANN401
    """Encode a Python value for storage in a SQLite column."""
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, dict | list):
        return json.dumps(value, default=str)
    return value


def _now_iso() -> str:
    return datetime.now(UTC).isoformat(timespec="microseconds").replace("+00:00", "Z")


def get_db_path(db_path: str | None = None) -> Path:
    """Get the resolved SQLite database file path."""
    path_str = db_path or settings.sqlite_db_path
    return Path(path_str).resolve()


def _parse_value(value: str) -> str | int:
    """Parse a filter value, treating all-digit strings as integers."""
    if value.isdigit():
        return int(value)
    return value


_SQL_OPERATORS = {"=": "=", "!=": "!="}


def _parse_single_comparison(comparison: str) -> tuple[str, str | int]:
    """Parse a single comparison expression into a SQL condition and parameter."""
    match = re.fullmatch(
        r"""(\w+)\s*(!=|=)\s*(['"])([^'"]*)\3""",
        comparison,
    )
    if not match:
        msg = f"Invalid filter syntax: {comparison}"
        raise ValueError(msg)

    field, op, _, raw_value = match.groups()
    return f"{field} {_SQL_OPERATORS[op]} ?", _parse_value(raw_value)


def parse_filter(filter_query: str) -> tuple[str, list[str | int]]:
    """Parse filter syntax into a SQL WHERE clause and parameter list.

    Supports ``field = "value"`` and ``field != "value"`` comparisons joined by
    ``&&``, e.g. ``status != "completed" && related_to = "tech"``.
    """
    if not filter_query:
        return "", []

    conditions = []
    params = []
    for part in filter_query.split("&&"):
        cond, value = _parse_single_comparison(part.strip())
        conditions.append(cond)
        params.append(value)

    return " AND ".join(conditions), params


def _parse_sort(sort: str) -> str:
    """Translate ``-field`` / ``+field`` / ``field`` into a safe ORDER BY clause."""
    if not sort:
        return "id ASC"

    sort = sort.strip()
    direction = "ASC"
    if sort.startswith("-"):
        direction = "DESC"
        sort = sort[1:]
    elif sort.startswith("+"):
        sort = sort[1:]

    if not re.match(r"^[A-Za-z_][A-Za-z0-9_]*$", sort):
        logger.warning("Invalid sort parameter, using default", extra={"sort": sort})
        return "id ASC"

    return f"{sort} {direction}, id {direction}"


_db_connections: dict[tuple[int, int, str], aiosqlite.Connection] = {}
_db_lock = asyncio.Lock()
_write_locks: weakref.WeakKeyDictionary[aiosqlite.Connection, asyncio.Lock] = weakref.WeakKeyDictionary()


async def get_connection(*, db_path: str | None = None) -> aiosqlite.Connection:
    """Get or create a cached connection for the current thread, loop, and db path."""
    thread_id = threading.get_ident()
    loop = asyncio.get_running_loop()
    loop_id = id(loop)
    path = get_db_path(db_path)
    cache_key = (thread_id, loop_id, str(path))

    if cache_key in _db_connections:
        return _db_connections[cache_key]

    async with _db_lock:
        # Double-check after acquiring lock
        if cache_key in _db_connections:
            return _db_connections[cache_key]

        path.parent.mkdir(parents=True, exist_ok=True)

        conn = await aiosqlite.connect(str(path))
        await conn.execute("PRAGMA foreign_keys = ON")
        await conn.execute("PRAGMA journal_mode = WAL")

        _db_connections[cache_key] = conn

        logger.info(
            "Created new SQLite connection",
            extra={"db_path": str(path), "thread_id": thread_id, "loop_id": loop_id},
        )
        return conn


async def close_connection(*, db_path: str | None = None) -> None:
    """Close the cached SQLite connection for the current thread, loop, and db path."""
    thread_id = threading.get_ident()
    loop_id = id(asyncio.get_running_loop())
    path = get_db_path(db_path)
    cache_key = (thread_id, loop_id, str(path))

    async with _db_lock:
        conn = _db_connections.pop(cache_key, None)
        if conn is None:
            return
        try:
            await conn.close()
            logger.info("Closed SQLite connection", extra={"db_path": str(path)})
        except aiosqlite.Error as e:
            logger.warning("Error closing SQLite connection", extra={"error": str(e), "db_path": str(path)})


async def init_db(*, db_path: str | None = None) -> None:
    """Initialize the database schema by delegating to schema.init_db()."""
    from taskboard.core import schema

    await schema.init_db(db_path=db_path)


async def _execute_write(conn: aiosqlite.Connection, query: str, values: list[Any]) -> aiosqlite.Cursor:
    """Execute one write statement in its own committed transaction.

    Writes on a shared connection are serialized so a rollback only ever
    discards this statement. If the caller is cancelled or the commit fails,
    the statement is rolled back rather than left pending for the next commit.
    """
    lock = _write_locks.setdefault(conn, asyncio.Lock())
    async with lock:
        try:
            cursor = await conn.execute(query, values)
            await conn.commit()
        except BaseException:
            await conn.rollback()
            raise
    return cursor


async def create_record(*, collection: str, data: dict[str, Any]) -> dict[str, Any]:
    """Insert a new record and return it with its assigned id."""
    _validate_collection_name(collection)
    try:
        conn = await get_connection()

        now = _now_iso()
        row = {"created": now, "updated": now, **data}
        columns = list(row.keys())
        columns_str = ", ".join(columns)
        placeholders_str = ", ".join("?" for _ in columns)
        values = [_encode_value(row[key]) for key in columns]

        query = f"INSERT INTO {collection} ({columns_str}) VALUES ({placeholders_str})"  # noqa: S608 - collection is validated
        cursor = await _execute_write(conn, query, values)
        record_id = cursor.lastrowid
    except aiosqlite.OperationalError as e:
        if "no such table" in str(e):
            msg = f"Table '{collection}' does not exist. Call init_db() first."
            logger.error("Table not found", extra={"collection": collection})
            raise DatabaseError(msg) from e
        logger.error("create_record_failed", extra={"collection": collection, "error": str(e)})
        raise DatabaseError(f"Failed to create record in {collection}: {e}") from e
    except aiosqlite.Error as e:
        logger.error("create_record_failed", extra={"collection": collection, "error": str(e)})
        raise DatabaseError(f"Failed to create record in {collection}: {e}") from e

    logger.info("Created record", extra={"collection": collection, "record_id": record_id})
    return await get_record(collection=collection, record_id=str(record_id))


async def get_record(*, collection: str, record_id: str) -> dict[str, Any]:
    """Fetch a single record by ID, raising RecordNotFoundError if not found."""
    _validate_collection_name(collection)
    if not str(record_id).isdigit():
        raise RecordNotFoundError(f"Record not found in {collection}: {record_id}")

    try:
        conn = await get_connection()

        query = f"SELECT * FROM {collection} WHERE id = ?"  # noqa: S608 - collection is validated
        cursor = await conn.execute(query, (int(record_id),))
        row = await cursor.fetchone()
        columns = [description[0] for description in cursor.description]
    except aiosqlite.Error as e:
        logger.error("get_record_failed", extra={"collection": collection, "record_id": record_id, "error": str(e)})
        raise DatabaseError(f"Failed to get record from {collection}: {e}") from e

    if row is None:
        raise RecordNotFoundError(f"Record not found in {collection}: {record_id}")

    record = dict(zip(columns, row, strict=True))
    logger.debug("Retrieved record", extra={"collection": collection, "record_id": record_id})
    return _convert_record_ids(record)


async def update_record(
    *,
    collection: str,
    record_id: str,
    data: dict[str, Any],
    expected_version: int | None = None,
) -> dict[str, Any]:
    """Update a record by ID and return the updated record.

    When ``expected_version`` is given the row's ``version`` column must still
    hold that value; the update then bumps it by one in the same statement.
    Otherwise VersionConflictError is raised and nothing is written.
    """
    if not data:
        msg = "Empty update payload"
        raise ValueError(msg)

    _validate_collection_name(collection)
    if not str(record_id).isdigit():
        raise RecordNotFoundError(f"Record not found in {collection}: {record_id}")

    row = {**data, "updated": _now_iso()}
    set_clause = ", ".join(f"{key} = ?" for key in row)
    values = [_encode_value(val) for val in row.values()]

    where_clause = "id = ?"
    values.append(int(record_id))
    if expected_version is not None:
        set_clause += ", version = version + 1"
        where_clause += " AND version = ?"
        values.append(expected_version)

    try:
        conn = await get_connection()
        query = f"UPDATE {collection} SET {set_clause} WHERE {where_clause}"  # noqa: S608 - collection is validated
        cursor = await _execute_write(conn, query, values)
        rowcount = cursor.rowcount
    except aiosqlite.Error as e:
        logger.error("update_record_failed", extra={"collection": collection, "record_id": record_id, "error": str(e)})
        raise DatabaseError(f"Failed to update record in {collection}: {e}") from e

    if rowcount == 0:
        # Distinguish a missing row from a lost version race
        await get_record(collection=collection, record_id=record_id)
        msg = f"Record {record_id} in {collection} was modified concurrently (expected version {expected_version})"
        raise VersionConflictError(msg)

    logger.info("Updated record", extra={"collection": collection, "record_id": record_id})
    return await get_record(collection=collection, record_id=record_id)


async def delete_record(*, collection: str, record_id: str) -> None:
    """Delete a record by ID, raising RecordNotFoundError if not found."""
    _validate_collection_name(collection)
    if not str(record_id).isdigit():
        raise RecordNotFoundError(f"Record not found in {collection}: {record_id}")

    try:
        conn = await get_connection()
        query = f"DELETE FROM {collection} WHERE id = ?"  # noqa: S608 - collection is validated
        cursor = await _execute_write(conn, query, [int(record_id)])
        rowcount = cursor.rowcount
    except aiosqlite.Error as e:
        logger.error("delete_record_failed", extra={"collection": collection, "record_id": record_id, "error": str(e)})
        raise DatabaseError(f"Failed to delete record from {collection}: {e}") from e

    if rowcount == 0:
        raise RecordNotFoundError(f"Record not found in {collection}: {record_id}")

    logger.info("Deleted record", extra={"collection": collection, "record_id": record_id})


async def list_records(
    *,
    collection: str,
    page: int = 1,
    per_page: int = 50,
    filter_query: str = "",
    sort: str = "",
) -> list[dict[str, Any]]:
    """List records with optional filtering, sorting, and pagination.

    ``sort`` takes a single field, prefixed with ``-`` for descending order.
    """
    _validate_collection_name(collection)

    where_clause = ""
    params: list[Any] = []
    if filter_query:
        where_clause, params = parse_filter(filter_query)
        where_clause = f"WHERE {where_clause}"

    order_by = _parse_sort(sort)
    offset = (page - 1) * per_page

    try:
        conn = await get_connection()
        query = f"SELECT * FROM {collection} {where_clause} ORDER BY {order_by} LIMIT ? OFFSET ?"  # noqa: S608 - collection is validated
        cursor = await conn.execute(query, [*params, per_page, offset])
        rows = await cursor.fetchall()
        columns = [description[0] for description in cursor.description]
    except aiosqlite.Error as e:
        logger.error("list_records_failed", extra={"collection": collection, "error": str(e)})
        raise DatabaseError(f"Failed to list records from {collection}: {e}") from e

    records = [_convert_record_ids(dict(zip(columns, row, strict=True))) for row in rows]
    logger.debug("Listed records", extra={"collection": collection, "count": len(records)})
    return records
