"""Backend collaborators: the persistence protocol and its two implementations.

:class:`WebhookPersistence` talks JSON to the webhook API with
``requests`` (run off the event loop with :func:`asyncio.to_thread`).
:class:`MemoryPersistence` keeps everything in process; it backs the
demo app, ``masterdata-grid browse --demo`` and the test suite.

Both raise only :mod:`masterdata_grid.errors` types: a response that
reports failure becomes :class:`RequestError`, a call that never got a
response becomes :class:`NetworkError`.
"""

import asyncio
import json
import logging
from datetime import datetime, timezone
from typing import Any, Protocol

import requests

from masterdata_grid.config import GridSettings
from masterdata_grid.errors import GridError, NetworkError, RequestError
from masterdata_grid.models import LookupItem, RequestContext

logger = logging.getLogger(__name__)


class Persistence(Protocol):
    """Everything the grid needs from a backend.

    The :class:`RequestContext` is passed explicitly; implementations
    never read locale or credentials from ambient state.
    """

    async def list_records(
        self, ctx: RequestContext, table: str, params: dict[str, Any] | None = None
    ) -> list[dict[str, Any]]: ...

    async def get_record(self, ctx: RequestContext, table: str, record_id: int) -> dict[str, Any]: ...

    async def create_record(
        self,
        ctx: RequestContext,
        table: str,
        payload: dict[str, Any],
        parent_id: int | None = None,
    ) -> dict[str, Any]: ...

    async def update_record(
        self, ctx: RequestContext, table: str, record_id: int, payload: dict[str, Any]
    ) -> dict[str, Any]: ...

    async def delete_record(self, ctx: RequestContext, table: str, record_id: int) -> dict[str, Any]: ...

    async def resolve_lookup(self, ctx: RequestContext, table: str, locale_code: str) -> list[LookupItem]: ...

    async def update_translation(
        self, ctx: RequestContext, code: str, language_id: int, text: str
    ) -> dict[str, Any]: ...

    async def create_translation(
        self, ctx: RequestContext, code: str, language_id: int, text: str
    ) -> dict[str, Any]: ...


# ---------------------------------------------------------------------------
# Webhook transport
# ---------------------------------------------------------------------------

# Tables that hang off an object (``/objects/{id}/{table}``) instead of
# living under ``/lookups``.
ENTITY_TABLES: frozenset[str] = frozenset(
    {"addresses", "contacts", "identifications", "notes", "relations"}
)

_BODY_METHODS: frozenset[str] = frozenset({"POST", "PUT", "PATCH"})


def _unwrap(response: requests.Response) -> Any:
    """Decode a webhook response envelope.

    Successful envelopes look like ``{"success": true, "data": ...}``;
    failures carry ``{"success": false, "error": {"code", "message",
    "details"}}``.  Bare JSON bodies are returned as-is.

    Raises:
        RequestError: For non-2xx statuses, unparseable bodies and
            envelopes with ``success: false``.
    """
    try:
        payload = response.json() if response.content else {}
    except ValueError:
        payload = None

    error = payload.get("error") if isinstance(payload, dict) else None
    error = error if isinstance(error, dict) else {}
    failed = not response.ok or (isinstance(payload, dict) and payload.get("success") is False)

    if failed:
        code = error.get("code") or ("NOT_FOUND" if response.status_code == 404 else "REQUEST_FAILED")
        message = error.get("message") or response.reason or "Request failed"
        raise RequestError(code, message, status=response.status_code, details=error.get("details"))
    if payload is None:
        raise RequestError(
            "INVALID_RESPONSE",
            f"Response is not JSON: {response.text[:200]!r}",
            status=response.status_code,
        )
    if isinstance(payload, dict) and "data" in payload:
        return payload["data"]
    return payload


class WebhookPersistence:
    """:class:`Persistence` over the JSON webhook API.

    Args:
        settings: Base URL, timeout, API key and update method.
        session: Optional pre-configured ``requests.Session``.
        entity_tables: Table names served under ``/objects/{parent_id}``.
    """

    def __init__(
        self,
        settings: GridSettings | None = None,
        session: requests.Session | None = None,
        entity_tables: frozenset[str] = ENTITY_TABLES,
    ) -> None:
        self.settings = settings or GridSettings.from_env()
        self.session = session or requests.Session()
        self.entity_tables = entity_tables

    # -- URL building -----------------------------------------------------

    def table_path(self, table: str, record_id: int | None = None, parent_id: int | None = None) -> str:
        if table in self.entity_tables:
            if parent_id is not None:
                path = f"/objects/{parent_id}/{table}"
            else:
                path = f"/{table}"
        else:
            path = f"/lookups/{table}"
        if record_id is not None:
            path = f"{path}/{record_id}"
        return path

    def headers(self, ctx: RequestContext) -> dict[str, str]:
        headers = {"Content-Type": "application/json", "Accept": "application/json"}
        if self.settings.api_key:
            headers["X-API-Key"] = self.settings.api_key
        if ctx.auth_token:
            headers["Authorization"] = f"Bearer {ctx.auth_token}"
        return headers

    # -- Transport --------------------------------------------------------

    def request(
        self,
        ctx: RequestContext,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        body: dict[str, Any] | None = None,
    ) -> Any:
        """Perform one blocking call and return the unwrapped ``data``.

        Bodies of ``POST`` / ``PUT`` / ``PATCH`` calls get the context's
        ``language_id`` unless they already carry one.
        """
        method = method.upper()
        if method in _BODY_METHODS:
            body = dict(body or {})
            if body.get("language_id") is None:
                body["language_id"] = ctx.locale_id
        url = f"{self.settings.base_url}{path}"
        logger.debug("%s %s params=%s", method, url, params)

        try:
            response = self.session.request(
                method,
                url,
                params=params,
                data=json.dumps(body) if body is not None else None,
                headers=self.headers(ctx),
                timeout=self.settings.timeout_s,
            )
        except (requests.ConnectionError, requests.Timeout) as exc:
            raise NetworkError(f"No response from {url}: {exc}") from exc
        except requests.RequestException as exc:
            raise RequestError("REQUEST_FAILED", str(exc)) from exc

        try:
            return _unwrap(response)
        except RequestError as exc:
            logger.error("%s %s failed: %s", method, url, exc)
            raise

    async def _call(self, ctx: RequestContext, method: str, path: str, **kwargs: Any) -> Any:
        return await asyncio.to_thread(self.request, ctx, method, path, **kwargs)

    # -- Persistence ------------------------------------------------------

    async def list_records(
        self, ctx: RequestContext, table: str, params: dict[str, Any] | None = None
    ) -> list[dict[str, Any]]:
        params = dict(params or {})
        parent_id = params.pop("parent_id", None)
        params.setdefault("language_code", ctx.locale_code)
        data = await self._call(ctx, "GET", self.table_path(table, parent_id=parent_id), params=params)
        if not data:
            return []
        if not isinstance(data, list) or not all(isinstance(row, dict) for row in data):
            raise RequestError("INVALID_RESPONSE", f"Expected a list of {table} records")
        return data

    async def get_record(self, ctx: RequestContext, table: str, record_id: int) -> dict[str, Any]:
        return await self._call(
            ctx, "GET", self.table_path(table, record_id), params={"language_code": ctx.locale_code}
        )

    async def create_record(
        self,
        ctx: RequestContext,
        table: str,
        payload: dict[str, Any],
        parent_id: int | None = None,
    ) -> dict[str, Any]:
        return await self._call(ctx, "POST", self.table_path(table, parent_id=parent_id), body=payload)

    async def update_record(
        self, ctx: RequestContext, table: str, record_id: int, payload: dict[str, Any]
    ) -> dict[str, Any]:
        return await self._call(
            ctx, self.settings.update_method, self.table_path(table, record_id), body=payload
        )

    async def delete_record(self, ctx: RequestContext, table: str, record_id: int) -> dict[str, Any]:
        data = await self._call(ctx, "DELETE", self.table_path(table, record_id))
        return data if isinstance(data, dict) else {"success": True}

    async def resolve_lookup(self, ctx: RequestContext, table: str, locale_code: str) -> list[LookupItem]:
        data = await self._call(
            ctx, "GET", self.table_path(table), params={"language_code": locale_code}
        )
        try:
            return [LookupItem.from_dict(item) for item in data or []]
        except (KeyError, TypeError, ValueError) as exc:
            raise RequestError("INVALID_RESPONSE", f"Malformed {table} lookup row: {exc!r}") from exc

    async def update_translation(
        self, ctx: RequestContext, code: str, language_id: int, text: str
    ) -> dict[str, Any]:
        return await self._call(
            ctx,
            "PUT",
            f"/lookups/translations/{code}/{language_id}",
            body={"text": text, "language_id": language_id},
        )

    async def create_translation(
        self, ctx: RequestContext, code: str, language_id: int, text: str
    ) -> dict[str, Any]:
        return await self._call(
            ctx,
            "POST",
            "/lookups/translations",
            body={"code": code, "language_id": language_id, "text": text},
        )


# ---------------------------------------------------------------------------
# In-memory backend
# ---------------------------------------------------------------------------

def _now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


def _diff_field(key: str) -> tuple[str, str] | None:
    """Split a diff payload key into ``(field, "old" | "new")``."""
    if key.endswith("_new"):
        return key[: -len("_new")], "new"
    if key.endswith("_old"):
        return key[: -len("_old")], "old"
    if key.startswith("new_"):
        return key[len("new_"):], "new"
    if key.startswith("old_"):
        return key[len("old_"):], "old"
    return None


class MemoryPersistence:
    """:class:`Persistence` backed by plain dicts.

    Behaves like the webhook backend where the grid can observe it:
    ids are assigned on create, audit timestamps are stamped, ``name``
    is resolved from the translations of the caller's locale, deletes
    are soft (``is_active = False``) and are refused while another
    record still references the target.

    Args:
        tables: ``{table: [record, ...]}`` seed data.
        translations: ``{(code, language_id): text}`` seed data.
        languages: Rows of the ``languages`` table.
        delay: Seconds every call sleeps before answering; lets tests
            observe in-flight states.

    Attributes:
        calls: ``(operation, table_or_code, ...)`` tuples, one per call.
        failures: ``{key: error}``; a call raises the error while its key
            is present.  Keys are ``"operation"``, ``"operation:table"``
            or, for translation calls, ``"operation:language_id"``.
    """

    def __init__(
        self,
        tables: dict[str, list[dict[str, Any]]] | None = None,
        translations: dict[tuple[str, int], str] | None = None,
        languages: list[dict[str, Any]] | None = None,
        delay: float = 0.0,
    ) -> None:
        self.tables: dict[str, list[dict[str, Any]]] = {
            name: [dict(row) for row in rows] for name, rows in (tables or {}).items()
        }
        if languages is not None:
            self.tables["languages"] = [dict(row) for row in languages]
        self.translations: dict[tuple[str, int], str] = dict(translations or {})
        self.references: dict[tuple[str, int], int] = {}
        self.audit_log: list[dict[str, Any]] = []
        self.calls: list[tuple[Any, ...]] = []
        self.failures: dict[str, GridError] = {}
        self.delay = delay

    # -- helpers ----------------------------------------------------------

    def add_reference(self, table: str, record_id: int, count: int = 1) -> None:
        """Record that *count* other records reference ``table/record_id``."""
        key = (table, record_id)
        self.references[key] = self.references.get(key, 0) + count

    async def _enter(self, operation: str, *keys: Any) -> None:
        self.calls.append((operation, *keys))
        if self.delay:
            await asyncio.sleep(self.delay)
        for key in (operation, *(f"{operation}:{k}" for k in keys)):
            if key in self.failures:
                raise self.failures[key]

    def _rows(self, table: str) -> list[dict[str, Any]]:
        return self.tables.setdefault(table, [])

    def _find(self, table: str, record_id: int) -> dict[str, Any]:
        for row in self._rows(table):
            if row.get("id") == record_id:
                return row
        raise RequestError("NOT_FOUND", f"{table} record {record_id} not found", status=404)

    def _language_id(self, locale_code: str) -> int | None:
        for row in self.tables.get("languages", []):
            if row.get("code") == locale_code:
                return row["id"]
        return None

    def _localized(self, row: dict[str, Any], language_id: int) -> dict[str, Any]:
        out = dict(row)
        code = row.get("code")
        if code is not None and (code, language_id) in self.translations:
            out["name"] = self.translations[(code, language_id)]
        return out

    # -- Persistence ------------------------------------------------------

    async def list_records(
        self, ctx: RequestContext, table: str, params: dict[str, Any] | None = None
    ) -> list[dict[str, Any]]:
        await self._enter("list_records", table)
        params = params or {}
        rows = self._rows(table)
        if params.get("parent_id") is not None:
            rows = [r for r in rows if r.get("parent_id") == params["parent_id"]]
        return [self._localized(r, ctx.locale_id) for r in rows]

    async def get_record(self, ctx: RequestContext, table: str, record_id: int) -> dict[str, Any]:
        await self._enter("get_record", table)
        return self._localized(self._find(table, record_id), ctx.locale_id)

    async def create_record(
        self,
        ctx: RequestContext,
        table: str,
        payload: dict[str, Any],
        parent_id: int | None = None,
    ) -> dict[str, Any]:
        await self._enter("create_record", table)
        rows = self._rows(table)
        code = payload.get("code")
        if code is not None and any(r.get("code") == code for r in rows):
            raise RequestError("DUPLICATE_CODE", f"Code {code!r} already exists", status=409)

        row = {k: v for k, v in payload.items() if k not in ("text", "language_id")}
        row["id"] = max((r.get("id", 0) for r in rows), default=0) + 1
        row.setdefault("is_active", True)
        if parent_id is not None:
            row["parent_id"] = parent_id
        row["created_at"] = row["updated_at"] = _now()
        if payload.get("text") and code is not None:
            language_id = payload.get("language_id") or ctx.locale_id
            self.translations[(code, language_id)] = payload["text"]
        rows.append(row)
        self.audit_log.append({"action": "create", "table": table, "id": row["id"], "new": dict(row)})
        return self._localized(row, ctx.locale_id)

    async def update_record(
        self, ctx: RequestContext, table: str, record_id: int, payload: dict[str, Any]
    ) -> dict[str, Any]:
        await self._enter("update_record", table)
        row = self._find(table, record_id)
        old_values: dict[str, Any] = {}
        new_values: dict[str, Any] = {}
        for key, value in payload.items():
            split = _diff_field(key)
            if split is None:
                continue
            name, side = split
            (new_values if side == "new" else old_values)[name] = value

        text = new_values.pop("text", None)
        row.update(new_values)
        row["updated_at"] = _now()
        if text and row.get("code") is not None:
            language_id = payload.get("language_id") or ctx.locale_id
            self.translations[(row["code"], language_id)] = text
        self.audit_log.append(
            {"action": "update", "table": table, "id": record_id, "old": old_values, "new": new_values}
        )
        return self._localized(row, ctx.locale_id)

    async def delete_record(self, ctx: RequestContext, table: str, record_id: int) -> dict[str, Any]:
        await self._enter("delete_record", table)
        row = self._find(table, record_id)
        if self.references.get((table, record_id), 0) > 0:
            raise RequestError(
                "REFERENTIAL_INTEGRITY",
                f"{table} record {record_id} is still referenced by other records",
                status=409,
            )
        row["is_active"] = False
        row["updated_at"] = _now()
        self.audit_log.append({"action": "delete", "table": table, "id": record_id})
        return {"success": True}

    async def resolve_lookup(self, ctx: RequestContext, table: str, locale_code: str) -> list[LookupItem]:
        await self._enter("resolve_lookup", table)
        language_id = self._language_id(locale_code) or ctx.locale_id
        return [LookupItem.from_dict(self._localized(r, language_id)) for r in self._rows(table)]

    async def update_translation(
        self, ctx: RequestContext, code: str, language_id: int, text: str
    ) -> dict[str, Any]:
        await self._enter("update_translation", language_id)
        if (code, language_id) not in self.translations:
            raise RequestError(
                "NOT_FOUND", f"No translation for {code!r} in language {language_id}", status=404
            )
        self.translations[(code, language_id)] = text
        return {"code": code, "language_id": language_id, "text": text}

    async def create_translation(
        self, ctx: RequestContext, code: str, language_id: int, text: str
    ) -> dict[str, Any]:
        await self._enter("create_translation", language_id)
        self.translations[(code, language_id)] = text
        return {"code": code, "language_id": language_id, "text": text}
