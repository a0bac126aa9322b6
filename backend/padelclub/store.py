"""Record store access.

The core talks to a table-oriented store through four calls: ``list``,
``get``, ``create`` and ``update``. Records travel as :class:`Record` objects
whose ``fields`` use logical field names (see :mod:`padelclub.fields`).

Two backends exist. :class:`AirtableStore` is the production store, reached
over HTTP with ``httpx``. :class:`InMemoryStore` keeps everything in process
and backs the tests and ``STORE_BACKEND=memory`` local runs.

Neither backend offers transactions; callers must assume that a sequence of
writes can stop half-way.
"""

from __future__ import annotations

import copy
import logging
import uuid
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, Optional, Protocol

import httpx

from .cache import table_fields_cache
from .config import Settings, load_settings
from .exceptions import UpstreamError
from .fields import FieldMap, TableFields, load_field_map, PLAYERS, PAIRS, MATCHES, SET_SCORES

logger = logging.getLogger(__name__)

PAGE_SIZE = 100
# Airtable accepts at most this many records per create/update call.
WRITE_BATCH_SIZE = 10

SortSpec = Sequence[tuple[str, str]]


@dataclass
class Record:
    id: str
    fields: dict[str, Any] = field(default_factory=dict)


class RecordStore(Protocol):
    async def list(
        self,
        table: str,
        *,
        filter: Optional[Mapping[str, Any]] = None,
        sort: Optional[SortSpec] = None,
        max_records: Optional[int] = None,
    ) -> list[Record]: ...

    async def get(self, table: str, record_id: str) -> Record | None: ...

    async def create(self, table: str, fields_list: Sequence[Mapping[str, Any]]) -> list[Record]: ...

    async def update(self, table: str, records: Sequence[Record]) -> list[Record]: ...


def _chunks(items: Sequence[Any], size: int):
    for start in range(0, len(items), size):
        yield items[start : start + size]


# -----------------------------------------------------------------------------
# Airtable
# -----------------------------------------------------------------------------


def _formula_literal(value: Any) -> str:
    if isinstance(value, bool):
        return "TRUE()" if value else "FALSE()"
    if isinstance(value, (int, float)):
        return repr(value)
    text = str(value).replace("\\", "\\\\").replace("'", "\\'")
    return f"'{text}'"


def build_formula(conditions: Mapping[str, Any]) -> str:
    """Translate physical ``{column: value}`` equality filters into a formula."""

    parts = [f"{{{name}}} = {_formula_literal(value)}" for name, value in conditions.items()]
    if len(parts) == 1:
        return parts[0]
    return "AND(" + ", ".join(parts) + ")"


class AirtableStore:
    def __init__(
        self,
        settings: Settings,
        field_map: FieldMap | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        token, base_id = settings.require_airtable()
        self._settings = settings
        self._base_id = base_id
        self._field_map = field_map or load_field_map()
        self._tables = {
            PLAYERS: settings.players_table,
            PAIRS: settings.pairs_table,
            MATCHES: settings.matches_table,
            SET_SCORES: settings.set_scores_table,
        }
        self._client = httpx.AsyncClient(
            base_url=settings.airtable_api_url,
            headers={
                "Authorization": f"Bearer {token}",
                "Content-Type": "application/json",
            },
            timeout=settings.airtable_timeout,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    def _table_path(self, table: str) -> str:
        return f"/{self._base_id}/{self._tables[table]}"

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: Any = None,
        json: Any = None,
        allow_not_found: bool = False,
    ) -> dict[str, Any] | None:
        try:
            response = await self._client.request(method, path, params=params, json=json)
        except httpx.TimeoutException as exc:
            logger.warning("Airtable %s %s timed out", method, path)
            raise UpstreamError(
                "upstream_timeout",
                f"Airtable request timed out after {self._settings.airtable_timeout:g}s",
                status_code=504,
            ) from exc
        except httpx.HTTPError as exc:
            logger.warning("Airtable %s %s failed: %s", method, path, exc)
            raise UpstreamError("upstream_unavailable", f"Airtable request failed: {exc}") from exc

        if allow_not_found and response.status_code == 404:
            return None

        try:
            payload = response.json() if response.content else {}
        except ValueError:
            payload = {"raw": response.text}

        if response.is_error:
            error = payload.get("error") if isinstance(payload, dict) else None
            message = None
            if isinstance(error, dict):
                message = error.get("message") or error.get("type")
            elif isinstance(error, str):
                message = error
            raise UpstreamError(
                "upstream_error",
                message or f"Airtable error: {response.status_code}",
                details=payload,
            )
        return payload

    async def _available_fields(self) -> dict[str, set[str]]:
        async def load() -> dict[str, set[str]]:
            try:
                response = await self._client.get(f"/meta/bases/{self._base_id}/tables")
            except httpx.HTTPError as exc:
                raise UpstreamError(
                    "upstream_unavailable", f"Airtable metadata request failed: {exc}"
                ) from exc
            if response.status_code in (401, 403, 404):
                # Token lacks schema.bases:read; fall back to the preferred names.
                logger.info("Airtable metadata unavailable (%s); using default field names", response.status_code)
                return {}
            if response.is_error:
                raise UpstreamError(
                    "upstream_error", f"Airtable metadata error: {response.status_code}"
                )
            tables = response.json().get("tables") or []
            return {
                t.get("name"): {f.get("name") for f in t.get("fields") or []}
                for t in tables
            }

        return await table_fields_cache.get_or_load(self._base_id, load)

    async def _fields(self, table: str) -> TableFields:
        available = await self._available_fields()
        return self._field_map.resolve(table, available.get(self._tables[table]))

    def _to_record(self, raw: Mapping[str, Any], mapping: TableFields) -> Record:
        return Record(id=raw["id"], fields=mapping.decode(raw.get("fields") or {}))

    async def list(
        self,
        table: str,
        *,
        filter: Optional[Mapping[str, Any]] = None,
        sort: Optional[SortSpec] = None,
        max_records: Optional[int] = None,
    ) -> list[Record]:
        mapping = await self._fields(table)
        base_params: list[tuple[str, str]] = [("pageSize", str(PAGE_SIZE))]
        if max_records:
            base_params.append(("maxRecords", str(max_records)))
        if filter:
            conditions = {mapping.physical(k): v for k, v in filter.items()}
            base_params.append(("filterByFormula", build_formula(conditions)))
        for index, (name, direction) in enumerate(sort or ()):
            base_params.append((f"sort[{index}][field]", mapping.physical(name)))
            base_params.append((f"sort[{index}][direction]", direction or "asc"))

        records: list[Record] = []
        offset = None
        while True:
            params = list(base_params)
            if offset:
                params.append(("offset", offset))
            data = await self._request("GET", self._table_path(table), params=params)
            for raw in data.get("records") or []:
                records.append(self._to_record(raw, mapping))
            offset = data.get("offset")
            if not offset:
                break
        return records

    async def get(self, table: str, record_id: str) -> Record | None:
        mapping = await self._fields(table)
        data = await self._request(
            "GET", f"{self._table_path(table)}/{record_id}", allow_not_found=True
        )
        if data is None:
            return None
        return self._to_record(data, mapping)

    async def create(self, table: str, fields_list: Sequence[Mapping[str, Any]]) -> list[Record]:
        mapping = await self._fields(table)
        created: list[Record] = []
        for batch in _chunks(list(fields_list), WRITE_BATCH_SIZE):
            body = {"records": [{"fields": mapping.encode(f)} for f in batch], "typecast": True}
            data = await self._request("POST", self._table_path(table), json=body)
            created.extend(self._to_record(raw, mapping) for raw in data.get("records") or [])
        return created

    async def update(self, table: str, records: Sequence[Record]) -> list[Record]:
        mapping = await self._fields(table)
        updated: list[Record] = []
        for batch in _chunks(list(records), WRITE_BATCH_SIZE):
            body = {
                "records": [{"id": r.id, "fields": mapping.encode(r.fields)} for r in batch],
                "typecast": True,
            }
            data = await self._request("PATCH", self._table_path(table), json=body)
            updated.extend(self._to_record(raw, mapping) for raw in data.get("records") or [])
        return updated


# -----------------------------------------------------------------------------
# In-memory
# -----------------------------------------------------------------------------


def _sort_key(value: Any):
    # Missing values sort after present ones in both directions.
    if value is None or value == "":
        return (1, "")
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return (0, float(value))
    return (0, str(value))


class InMemoryStore:
    """Process-local store with the same contract as :class:`AirtableStore`."""

    def __init__(self) -> None:
        self._tables: dict[str, dict[str, dict[str, Any]]] = {
            PLAYERS: {},
            PAIRS: {},
            MATCHES: {},
            SET_SCORES: {},
        }

    def _table(self, table: str) -> dict[str, dict[str, Any]]:
        return self._tables.setdefault(table, {})

    @staticmethod
    def _new_id() -> str:
        return "rec" + uuid.uuid4().hex[:14]

    async def list(
        self,
        table: str,
        *,
        filter: Optional[Mapping[str, Any]] = None,
        sort: Optional[SortSpec] = None,
        max_records: Optional[int] = None,
    ) -> list[Record]:
        rows = [
            Record(id=rid, fields=copy.deepcopy(fields))
            for rid, fields in self._table(table).items()
        ]
        if filter:
            rows = [
                r for r in rows
                if all(r.fields.get(name) == value for name, value in filter.items())
            ]
        for name, direction in reversed(list(sort or ())):
            present = [r for r in rows if r.fields.get(name) not in (None, "")]
            missing = [r for r in rows if r.fields.get(name) in (None, "")]
            present.sort(key=lambda r: _sort_key(r.fields.get(name)), reverse=direction == "desc")
            rows = present + missing
        if max_records:
            rows = rows[:max_records]
        return rows

    async def get(self, table: str, record_id: str) -> Record | None:
        fields = self._table(table).get(record_id)
        if fields is None:
            return None
        return Record(id=record_id, fields=copy.deepcopy(fields))

    async def create(self, table: str, fields_list: Sequence[Mapping[str, Any]]) -> list[Record]:
        created = []
        for fields in fields_list:
            rid = self._new_id()
            self._table(table)[rid] = copy.deepcopy(dict(fields))
            created.append(Record(id=rid, fields=copy.deepcopy(dict(fields))))
        return created

    async def update(self, table: str, records: Sequence[Record]) -> list[Record]:
        rows = self._table(table)
        missing = [r.id for r in records if r.id not in rows]
        if missing:
            raise UpstreamError(
                "upstream_error",
                f"Record(s) not found in {table}: {', '.join(missing)}",
                details={"missing": missing},
            )
        updated = []
        for record in records:
            rows[record.id].update(copy.deepcopy(record.fields))
            updated.append(Record(id=record.id, fields=copy.deepcopy(rows[record.id])))
        return updated


# -----------------------------------------------------------------------------
# Dependency
# -----------------------------------------------------------------------------

_store: RecordStore | None = None


def get_store() -> RecordStore:
    """Return the lazily created process-wide store.

    Creation waits for first use so that
    importing this module has no side effects and a missing ``AIRTABLE_TOKEN``
    only fails the requests that need the store.
    """

    global _store

    if _store is None:
        settings = load_settings()
        if settings.store_backend == "memory":
            logger.warning("STORE_BACKEND=memory; data will not survive a restart")
            _store = InMemoryStore()
        else:
            _store = AirtableStore(settings)
    return _store


async def close_store() -> None:
    global _store

    store, _store = _store, None
    if isinstance(store, AirtableStore):
        await store.aclose()
