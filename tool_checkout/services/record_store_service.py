from __future__ import annotations

import http.client
import json
import logging
import os
import urllib.error
import urllib.request
from concurrent.futures import ThreadPoolExecutor
from typing import Any

from pydantic import ValidationError

from schemas.records import Checkout, Employee, Return, StorageLocation, Tool
from services.reconciliation_service import Snapshot
from services.reference_service import RecordKind, get_app_id, get_base_url


STORE_LOGGER = logging.getLogger("tool_checkout.store")

RECORD_MODELS = {
    RecordKind.EMPLOYEE: Employee,
    RecordKind.TOOL: Tool,
    RecordKind.LOCATION: StorageLocation,
    RecordKind.CHECKOUT: Checkout,
    RecordKind.RETURN: Return,
}


class RecordStoreError(RuntimeError):
    def __init__(self, message: str, status: int | None = None):
        super().__init__(message)
        self.status = status


def _require_env(name: str) -> str:
    value = (os.environ.get(name) or "").strip()
    if not value:
        raise RecordStoreError(f"Missing required environment variable: {name}")
    return value


def _build_auth_header_value(token: str, scheme: str) -> str:
    if not scheme:
        return token
    return f"{scheme} {token}"


def _timeout_from_env() -> float:
    raw = (os.environ.get("RECORD_STORE_TIMEOUT_SECONDS") or "").strip()
    try:
        return max(float(raw), 1.0) if raw else 20.0
    except ValueError:
        return 20.0


def _record_rows(payload: Any) -> list[dict[str, Any]]:
    # The store answers with an object keyed by record id; older endpoints send a list.
    if isinstance(payload, dict):
        rows = []
        for record_id, row in payload.items():
            if not isinstance(row, dict):
                continue
            rows.append({**row, "record_id": row.get("record_id") or record_id})
        return rows
    if isinstance(payload, list):
        return [row for row in payload if isinstance(row, dict)]
    raise RecordStoreError("Record store payload is neither an object nor a list")


class RecordStoreClient:
    def __init__(
        self,
        base_url: str | None = None,
        api_key: str | None = None,
        auth_header: str | None = None,
        auth_scheme: str | None = None,
        timeout: float | None = None,
    ):
        self.base_url = (base_url or get_base_url()).rstrip("/")
        self.api_key = api_key
        self.auth_header = (auth_header or os.environ.get("RECORD_STORE_AUTH_HEADER") or "X-API-Key").strip()
        self.auth_scheme = (auth_scheme if auth_scheme is not None else os.environ.get("RECORD_STORE_AUTH_SCHEME") or "").strip()
        self.timeout = timeout or _timeout_from_env()

    def _records_path(self, kind: RecordKind, record_id: str | None = None) -> str:
        path = f"/apps/{get_app_id(kind)}/records"
        return f"{path}/{record_id}" if record_id else path

    def _request(self, method: str, path: str, payload: dict | None = None) -> Any:
        token = self.api_key or _require_env("RECORD_STORE_API_KEY")
        headers = {
            "Accept": "application/json",
            self.auth_header: _build_auth_header_value(token, self.auth_scheme),
        }
        data = None
        if payload is not None:
            data = json.dumps(payload).encode("utf-8")
            headers["Content-Type"] = "application/json"
        request = urllib.request.Request(
            url=f"{self.base_url}{path}",
            data=data,
            headers=headers,
            method=method,
        )
        try:
            with urllib.request.urlopen(request, timeout=self.timeout) as response:
                status = response.status
                body = response.read()
        except urllib.error.HTTPError as exc:
            STORE_LOGGER.warning("Record store %s %s failed with status %s", method, path, exc.code)
            raise RecordStoreError(f"Record store HTTP error: {exc.code}", status=exc.code) from exc
        except urllib.error.URLError as exc:
            STORE_LOGGER.warning("Record store %s %s unreachable: %s", method, path, exc.reason)
            raise RecordStoreError(f"Record store connection error: {exc.reason}") from exc
        except TimeoutError as exc:
            STORE_LOGGER.warning("Record store %s %s timed out", method, path)
            raise RecordStoreError("Record store request timed out") from exc
        except (OSError, http.client.HTTPException) as exc:
            STORE_LOGGER.warning("Record store %s %s failed: %s", method, path, exc)
            raise RecordStoreError(f"Record store connection error: {exc}") from exc

        if status not in {200, 201, 204}:
            raise RecordStoreError(f"Record store returned status {status}", status=status)
        if not body:
            return None
        try:
            return json.loads(body.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise RecordStoreError("Record store returned invalid JSON") from exc

    def _parse(self, kind: RecordKind, row: dict[str, Any]):
        model = RECORD_MODELS[kind]
        try:
            return model.model_validate(row)
        except ValidationError as exc:
            STORE_LOGGER.warning(
                "Skipping unreadable %s record %s: %s", kind.value, row.get("record_id"), exc.error_count()
            )
            return None

    def _persisted(self, kind: RecordKind, payload: Any, record_id: str | None = None):
        if isinstance(payload, dict) and "fields" in payload:
            row = {**payload, "record_id": payload.get("record_id") or payload.get("id") or record_id}
            record = self._parse(kind, row)
            if record is not None:
                return record
        new_id = payload.get("id") if isinstance(payload, dict) else None
        new_id = new_id or record_id
        if not new_id:
            raise RecordStoreError(f"Record store did not return an id for the new {kind.value} record")
        return self.get_record(kind, str(new_id))

    def list_records(self, kind: RecordKind) -> list:
        payload = self._request("GET", self._records_path(kind))
        records = []
        for row in _record_rows(payload if payload is not None else {}):
            record = self._parse(kind, row)
            if record is not None:
                records.append(record)
        return records

    def get_record(self, kind: RecordKind, record_id: str):
        payload = self._request("GET", self._records_path(kind, record_id))
        if not isinstance(payload, dict):
            raise RecordStoreError(f"{kind.value} record {record_id} not found", status=404)
        record = self._parse(kind, {**payload, "record_id": payload.get("record_id") or record_id})
        if record is None:
            raise RecordStoreError(f"{kind.value} record {record_id} is unreadable")
        return record

    def create_record(self, kind: RecordKind, fields: dict[str, Any]):
        payload = self._request("POST", self._records_path(kind), {"fields": fields})
        STORE_LOGGER.info("Created %s record", kind.value)
        return self._persisted(kind, payload)

    def update_record(self, kind: RecordKind, record_id: str, fields: dict[str, Any]):
        payload = self._request("PATCH", self._records_path(kind, record_id), {"fields": fields})
        STORE_LOGGER.info("Updated %s record %s", kind.value, record_id)
        return self._persisted(kind, payload, record_id)

    def delete_record(self, kind: RecordKind, record_id: str) -> None:
        self._request("DELETE", self._records_path(kind, record_id))
        STORE_LOGGER.info("Deleted %s record %s", kind.value, record_id)


def load_snapshot(client) -> Snapshot:
    """Fetch all five collections concurrently; any failed list fails the load."""
    kinds = (RecordKind.TOOL, RecordKind.CHECKOUT, RecordKind.RETURN, RecordKind.LOCATION, RecordKind.EMPLOYEE)
    with ThreadPoolExecutor(max_workers=len(kinds)) as pool:
        futures = {kind: pool.submit(client.list_records, kind) for kind in kinds}
        results = {kind: future.result() for kind, future in futures.items()}
    return Snapshot(
        tools=tuple(results[RecordKind.TOOL]),
        checkouts=tuple(results[RecordKind.CHECKOUT]),
        returns=tuple(results[RecordKind.RETURN]),
        locations=tuple(results[RecordKind.LOCATION]),
        employees=tuple(results[RecordKind.EMPLOYEE]),
    )
