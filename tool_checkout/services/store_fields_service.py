from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Any

from pydantic import BaseModel

from services.reference_service import RecordKind, create_record_url


_FIELD_MAPS: dict[RecordKind, dict[str, str]] = {
    RecordKind.EMPLOYEE: {
        "firstName": "vorname",
        "lastName": "nachname",
        "personnelNumber": "personalnummer",
        "department": "abteilung",
        "phone": "telefonnummer",
        "email": "email",
        "notes": "notizen_mitarbeiter",
    },
    RecordKind.TOOL: {
        "designation": "bezeichnung",
        "manufacturer": "hersteller",
        "modelNumber": "modellnummer",
        "serialNumber": "seriennummer",
        "category": "kategorie",
        "purchaseDate": "anschaffungsdatum",
        "purchasePrice": "anschaffungspreis",
        "locationID": "aktueller_lagerort",
        "condition": "zustand",
        "requiresInspection": "pruefpflicht",
        "nextInspection": "naechster_prueftermin",
        "notes": "notizen",
    },
    RecordKind.LOCATION: {
        "name": "ortsbezeichnung",
        "description": "beschreibung",
        "type": "typ",
    },
    RecordKind.CHECKOUT: {
        "toolID": "werkzeug",
        "employeeID": "mitarbeiter",
        "issuedAt": "ausgabedatum",
        "plannedReturnDate": "geplantes_rueckgabedatum",
        "purpose": "verwendungszweck",
        "notes": "notizen",
    },
    RecordKind.RETURN: {
        "checkoutID": "ausgabe",
        "returnedAt": "rueckgabedatum",
        "condition": "zustand_bei_rueckgabe",
        "damage": "beschaedigungen",
        "notes": "notizen_rueckgabe",
        "locationID": "rueckgabe_lagerort",
    },
}

# Reference fields are written as record URLs of the target kind.
_REFERENCE_KINDS: dict[str, RecordKind] = {
    "toolID": RecordKind.TOOL,
    "employeeID": RecordKind.EMPLOYEE,
    "checkoutID": RecordKind.CHECKOUT,
    "locationID": RecordKind.LOCATION,
}


def format_timestamp(value: datetime) -> str:
    # Aware values are stored as UTC, the same way they are read back.
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value.strftime("%Y-%m-%dT%H:%M")


def format_date(value: date) -> str:
    return value.isoformat()


def clean_text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _store_value(field: str, value: Any) -> Any:
    if value is None:
        return None
    if field in _REFERENCE_KINDS:
        record_id = clean_text(value)
        return create_record_url(_REFERENCE_KINDS[field], record_id) if record_id else None
    if isinstance(value, datetime):
        return format_timestamp(value)
    if isinstance(value, date):
        return format_date(value)
    if isinstance(value, str):
        return clean_text(value)
    return value


def to_store_fields(kind: RecordKind, payload: BaseModel, partial: bool = False) -> dict[str, Any]:
    """Map an upsert DTO onto the store's field names.

    Creates drop empty values. Partial updates only carry fields the caller
    sent; an explicit null or blank string clears the stored value.
    """
    mapping = _FIELD_MAPS[kind]
    fields: dict[str, Any] = {}
    for name, value in payload.model_dump(exclude_unset=partial).items():
        target = mapping.get(name)
        if not target:
            continue
        stored = _store_value(name, value)
        if stored is None and not partial:
            continue
        fields[target] = stored
    return fields
