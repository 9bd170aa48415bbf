from __future__ import annotations

import os
import re
from enum import Enum
from typing import Any


DEFAULT_BASE_URL = "https://my.living-apps.de/rest"

_RECORD_URL_PATTERN = re.compile(r"/apps/([0-9a-f]{24})/records/([0-9a-f]{24})/?$", re.IGNORECASE)
_TRAILING_ID_PATTERN = re.compile(r"([0-9a-f]{24})/?$", re.IGNORECASE)


class RecordKind(str, Enum):
    EMPLOYEE = "MITARBEITER"
    CHECKOUT = "WERKZEUGAUSGABE"
    TOOL = "WERKZEUGE"
    LOCATION = "LAGERORTE"
    RETURN = "WERKZEUGRUECKGABE"


DEFAULT_APP_IDS = {
    RecordKind.EMPLOYEE: "697b2b318bccec961fdb7818",
    RecordKind.CHECKOUT: "697b2b41d520e5a668295185",
    RecordKind.TOOL: "697b2b4092d14994749ca71b",
    RecordKind.LOCATION: "697b2b40f8a1c1f639e5c8be",
    RecordKind.RETURN: "697b2b42b0235053832268ab",
}


def get_base_url() -> str:
    return (os.environ.get("RECORD_STORE_BASE_URL") or DEFAULT_BASE_URL).strip().rstrip("/")


def get_app_id(kind: RecordKind) -> str:
    override = (os.environ.get(f"APP_ID_{kind.value}") or "").strip()
    return override or DEFAULT_APP_IDS[kind]


def extract_record_id(reference: Any, kind: RecordKind | None = None) -> str | None:
    if not isinstance(reference, str):
        return None
    value = reference.strip()
    if not value:
        return None

    match = _RECORD_URL_PATTERN.search(value)
    if match:
        app_id, record_id = match.group(1), match.group(2)
        if kind is not None and app_id.lower() != get_app_id(kind).lower():
            return None
        return record_id

    if kind is not None:
        return None
    match = _TRAILING_ID_PATTERN.search(value)
    return match.group(1) if match else None


def create_record_url(kind: RecordKind, record_id: str) -> str:
    return f"{get_base_url()}/apps/{get_app_id(kind)}/records/{record_id}"
