from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


def parse_timestamp(value: Any) -> datetime | None:
    """Parse a stored date or date-time value into a naive datetime.

    The record store hands out bare dates (``2025-03-01``), minute-precision
    stamps (``2025-03-01T08:30``) and full ISO stamps with offsets for the
    same logical field. Aware values are converted to UTC before the tzinfo
    is dropped so every timestamp in a snapshot stays comparable.
    Anything unparseable yields ``None``.
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    elif isinstance(value, str):
        raw = value.strip()
        if not raw:
            return None
        if raw.endswith("Z") or raw.endswith("z"):
            raw = raw[:-1] + "+00:00"
        raw = raw.replace(" ", "T", 1)
        try:
            parsed = datetime.fromisoformat(raw)
        except ValueError:
            try:
                parsed = datetime.fromisoformat(raw[:10])
            except ValueError:
                return None
    else:
        return None

    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def parse_date(value: Any) -> date | None:
    """Day-granularity view of a stored value; any time-of-day part is cut off."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        raw = value.strip()[:10]
        try:
            return date.fromisoformat(raw)
        except ValueError:
            return None
    return None


def _coerce_text(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return str(value)
    return None


def _coerce_bool(value: Any) -> bool | None:
    if value is None or isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"1", "true", "yes", "ja"}:
            return True
        if lowered in {"0", "false", "no", "nein", ""}:
            return False
        return None
    if isinstance(value, (int, float)):
        return bool(value)
    return None


def _coerce_number(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


class _Fields(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)


class EmployeeFields(_Fields):
    first_name: Optional[str] = Field(None, alias="vorname")
    last_name: Optional[str] = Field(None, alias="nachname")
    personnel_number: Optional[str] = Field(None, alias="personalnummer")
    department: Optional[str] = Field(None, alias="abteilung")
    phone: Optional[str] = Field(None, alias="telefonnummer")
    email: Optional[str] = Field(None, alias="email")
    notes: Optional[str] = Field(None, alias="notizen_mitarbeiter")

    @field_validator("*", mode="before")
    @classmethod
    def _text(cls, value: Any) -> str | None:
        return _coerce_text(value)


class ToolFields(_Fields):
    designation: Optional[str] = Field(None, alias="bezeichnung")
    manufacturer: Optional[str] = Field(None, alias="hersteller")
    model_number: Optional[str] = Field(None, alias="modellnummer")
    serial_number: Optional[str] = Field(None, alias="seriennummer")
    category: Optional[str] = Field(None, alias="kategorie")
    purchase_date: Optional[date] = Field(None, alias="anschaffungsdatum")
    purchase_price: Optional[float] = Field(None, alias="anschaffungspreis")
    location: Optional[str] = Field(None, alias="aktueller_lagerort")
    condition: Optional[str] = Field(None, alias="zustand")
    requires_inspection: Optional[bool] = Field(None, alias="pruefpflicht")
    next_inspection: Optional[date] = Field(None, alias="naechster_prueftermin")
    notes: Optional[str] = Field(None, alias="notizen")
    photo: Optional[str] = Field(None, alias="foto")

    @field_validator(
        "designation",
        "manufacturer",
        "model_number",
        "serial_number",
        "category",
        "location",
        "condition",
        "notes",
        "photo",
        mode="before",
    )
    @classmethod
    def _text(cls, value: Any) -> str | None:
        return _coerce_text(value)

    @field_validator("purchase_date", "next_inspection", mode="before")
    @classmethod
    def _dates(cls, value: Any) -> date | None:
        return parse_date(value)

    @field_validator("purchase_price", mode="before")
    @classmethod
    def _number(cls, value: Any) -> float | None:
        return _coerce_number(value)

    @field_validator("requires_inspection", mode="before")
    @classmethod
    def _flag(cls, value: Any) -> bool | None:
        return _coerce_bool(value)


class LocationFields(_Fields):
    description: Optional[str] = Field(None, alias="beschreibung")
    name: Optional[str] = Field(None, alias="ortsbezeichnung")
    type: Optional[str] = Field(None, alias="typ")

    @field_validator("*", mode="before")
    @classmethod
    def _text(cls, value: Any) -> str | None:
        return _coerce_text(value)


class CheckoutFields(_Fields):
    employee: Optional[str] = Field(None, alias="mitarbeiter")
    tool: Optional[str] = Field(None, alias="werkzeug")
    issued_at: Optional[datetime] = Field(None, alias="ausgabedatum")
    planned_return: Optional[date] = Field(None, alias="geplantes_rueckgabedatum")
    purpose: Optional[str] = Field(None, alias="verwendungszweck")
    notes: Optional[str] = Field(None, alias="notizen")

    @field_validator("employee", "tool", "purpose", "notes", mode="before")
    @classmethod
    def _text(cls, value: Any) -> str | None:
        return _coerce_text(value)

    @field_validator("issued_at", mode="before")
    @classmethod
    def _timestamp(cls, value: Any) -> datetime | None:
        return parse_timestamp(value)

    @field_validator("planned_return", mode="before")
    @classmethod
    def _date(cls, value: Any) -> date | None:
        return parse_date(value)


class ReturnFields(_Fields):
    checkout: Optional[str] = Field(None, alias="ausgabe")
    returned_at: Optional[datetime] = Field(None, alias="rueckgabedatum")
    location: Optional[str] = Field(None, alias="rueckgabe_lagerort")
    condition: Optional[str] = Field(None, alias="zustand_bei_rueckgabe")
    damage: Optional[str] = Field(None, alias="beschaedigungen")
    notes: Optional[str] = Field(None, alias="notizen_rueckgabe")

    @field_validator("checkout", "location", "condition", "damage", "notes", mode="before")
    @classmethod
    def _text(cls, value: Any) -> str | None:
        return _coerce_text(value)

    @field_validator("returned_at", mode="before")
    @classmethod
    def _timestamp(cls, value: Any) -> datetime | None:
        return parse_timestamp(value)


class _Record(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)

    record_id: str
    createdat: Optional[datetime] = None
    updatedat: Optional[datetime] = None

    @field_validator("createdat", "updatedat", mode="before")
    @classmethod
    def _timestamps(cls, value: Any) -> datetime | None:
        return parse_timestamp(value)

    @field_validator("fields", mode="before", check_fields=False)
    @classmethod
    def _fields(cls, value: Any) -> Any:
        return value if isinstance(value, dict) else {}


class Employee(_Record):
    fields: EmployeeFields = Field(default_factory=EmployeeFields)

    @property
    def full_name(self) -> str | None:
        parts = [part.strip() for part in (self.fields.first_name, self.fields.last_name) if part and part.strip()]
        return " ".join(parts) if parts else None


class Tool(_Record):
    fields: ToolFields = Field(default_factory=ToolFields)


class StorageLocation(_Record):
    fields: LocationFields = Field(default_factory=LocationFields)


class Checkout(_Record):
    fields: CheckoutFields = Field(default_factory=CheckoutFields)

    @property
    def event_time(self) -> datetime | None:
        return self.fields.issued_at or self.createdat


class Return(_Record):
    fields: ReturnFields = Field(default_factory=ReturnFields)

    @property
    def event_time(self) -> datetime | None:
        return self.fields.returned_at or self.createdat
