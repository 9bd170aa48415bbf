"""Checkout/return reconciliation for the dashboard.

Everything here works on an immutable :class:`Snapshot` of the five record
collections and is free of I/O, so the same snapshot and ``today`` always
give the same classification and ordering. Missing or dangling references
resolve to ``None``; display fallbacks belong to the API serialisers.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Iterable, Optional

from schemas.records import Checkout, Employee, Return, StorageLocation, Tool
from services.reference_service import RecordKind, extract_record_id


REPAIR_CONDITIONS = frozenset({"reparaturbeduerftig", "defekt"})
DEFAULT_HORIZON_DAYS = 30
DEFAULT_ACTIVITY_LIMIT = 10
DEFAULT_LOCATION_LIMIT = 6


@dataclass(frozen=True)
class Snapshot:
    tools: tuple[Tool, ...] = ()
    checkouts: tuple[Checkout, ...] = ()
    returns: tuple[Return, ...] = ()
    locations: tuple[StorageLocation, ...] = ()
    employees: tuple[Employee, ...] = ()


@dataclass(frozen=True)
class OpenCheckout:
    checkout: Checkout
    tool: Optional[Tool]
    employee: Optional[Employee]


@dataclass(frozen=True)
class OverdueCheckout:
    entry: OpenCheckout
    days_overdue: int


@dataclass(frozen=True)
class InspectionAlert:
    tool: Tool
    due_date: date
    days_until: int

    @property
    def is_overdue(self) -> bool:
        return self.days_until < 0


@dataclass(frozen=True)
class ActivityItem:
    id: str
    type: str
    record_id: str
    date: Optional[datetime]
    tool: Optional[Tool]
    employee: Optional[Employee]


@dataclass(frozen=True)
class LocationCount:
    location: Optional[StorageLocation]
    count: int


@dataclass(frozen=True)
class IntegrityFinding:
    name: str
    ok: bool
    detail: str


@dataclass(frozen=True)
class Reconciliation:
    today: date
    horizon_days: int
    total_tools: int
    open_checkouts: tuple[OpenCheckout, ...]
    overdue: tuple[OverdueCheckout, ...]
    inspection_alerts: tuple[InspectionAlert, ...]
    repair_needed: tuple[Tool, ...]
    activity: tuple[ActivityItem, ...]
    tools_by_location: tuple[LocationCount, ...] = field(default=())

    @property
    def checked_out_count(self) -> int:
        return len(self.open_checkouts)

    @property
    def available_count(self) -> int:
        busy = {entry.tool.record_id for entry in self.open_checkouts if entry.tool is not None}
        return max(self.total_tools - len(busy), 0)

    @property
    def inspection_due(self) -> tuple[InspectionAlert, ...]:
        return tuple(alert for alert in self.inspection_alerts if not alert.is_overdue)

    @property
    def inspection_overdue(self) -> tuple[InspectionAlert, ...]:
        return tuple(alert for alert in self.inspection_alerts if alert.is_overdue)


def _index(records: Iterable) -> dict:
    return {record.record_id: record for record in records}


def _sort_time(value: Optional[datetime]) -> tuple[bool, datetime]:
    return (value is not None, value or datetime.min)


def returned_checkout_ids(returns: Iterable[Return]) -> set[str]:
    ids = set()
    for record in returns:
        checkout_id = extract_record_id(record.fields.checkout, RecordKind.CHECKOUT)
        if checkout_id:
            ids.add(checkout_id)
    return ids


def open_checkouts(snapshot: Snapshot) -> list[OpenCheckout]:
    returned = returned_checkout_ids(snapshot.returns)
    tools = _index(snapshot.tools)
    employees = _index(snapshot.employees)

    entries = []
    for checkout in snapshot.checkouts:
        if checkout.record_id in returned:
            continue
        tool_id = extract_record_id(checkout.fields.tool, RecordKind.TOOL)
        employee_id = extract_record_id(checkout.fields.employee, RecordKind.EMPLOYEE)
        entries.append(
            OpenCheckout(
                checkout=checkout,
                tool=tools.get(tool_id) if tool_id else None,
                employee=employees.get(employee_id) if employee_id else None,
            )
        )
    entries.sort(key=lambda entry: entry.checkout.record_id)
    entries.sort(key=lambda entry: _sort_time(entry.checkout.event_time), reverse=True)
    return entries


def overdue_checkouts(entries: Iterable[OpenCheckout], today: date) -> list[OverdueCheckout]:
    overdue = []
    for entry in entries:
        planned = entry.checkout.fields.planned_return
        if planned is None or planned >= today:
            continue
        overdue.append(OverdueCheckout(entry=entry, days_overdue=(today - planned).days))
    overdue.sort(key=lambda item: (item.entry.checkout.fields.planned_return, item.entry.checkout.record_id))
    return overdue


def inspection_alerts(tools: Iterable[Tool], today: date, horizon_days: int = DEFAULT_HORIZON_DAYS) -> list[InspectionAlert]:
    limit = today + timedelta(days=max(int(horizon_days), 0))
    alerts = []
    for tool in tools:
        due = tool.fields.next_inspection
        if not tool.fields.requires_inspection or due is None:
            continue
        if due > limit:
            continue
        alerts.append(InspectionAlert(tool=tool, due_date=due, days_until=(due - today).days))
    alerts.sort(key=lambda alert: (alert.due_date, alert.tool.record_id))
    return alerts


def inspection_due(tools: Iterable[Tool], today: date, horizon_days: int = DEFAULT_HORIZON_DAYS) -> list[InspectionAlert]:
    return [alert for alert in inspection_alerts(tools, today, horizon_days) if not alert.is_overdue]


def inspection_overdue(tools: Iterable[Tool], today: date) -> list[InspectionAlert]:
    return [alert for alert in inspection_alerts(tools, today, 0) if alert.is_overdue]


def repair_needed(tools: Iterable[Tool]) -> list[Tool]:
    return sorted(
        (tool for tool in tools if tool.fields.condition in REPAIR_CONDITIONS),
        key=lambda tool: tool.record_id,
    )


def recent_activity(snapshot: Snapshot, limit: int = DEFAULT_ACTIVITY_LIMIT) -> list[ActivityItem]:
    tools = _index(snapshot.tools)
    employees = _index(snapshot.employees)
    checkouts = _index(snapshot.checkouts)

    def _parties(checkout: Checkout) -> tuple[Optional[Tool], Optional[Employee]]:
        tool_id = extract_record_id(checkout.fields.tool, RecordKind.TOOL)
        employee_id = extract_record_id(checkout.fields.employee, RecordKind.EMPLOYEE)
        return (
            tools.get(tool_id) if tool_id else None,
            employees.get(employee_id) if employee_id else None,
        )

    items = []
    for checkout in snapshot.checkouts:
        tool, employee = _parties(checkout)
        items.append(
            ActivityItem(
                id=f"checkout-{checkout.record_id}",
                type="checkout",
                record_id=checkout.record_id,
                date=checkout.event_time,
                tool=tool,
                employee=employee,
            )
        )

    for record in snapshot.returns:
        checkout_id = extract_record_id(record.fields.checkout, RecordKind.CHECKOUT)
        checkout = checkouts.get(checkout_id) if checkout_id else None
        if checkout is None:
            continue
        tool, employee = _parties(checkout)
        items.append(
            ActivityItem(
                id=f"return-{record.record_id}",
                type="return",
                record_id=record.record_id,
                date=record.event_time,
                tool=tool,
                employee=employee,
            )
        )

    items.sort(key=lambda item: item.id)
    items.sort(key=lambda item: _sort_time(item.date), reverse=True)
    return items[: max(int(limit), 0)]


def tools_by_location(snapshot: Snapshot, limit: int = DEFAULT_LOCATION_LIMIT) -> list[LocationCount]:
    locations = _index(snapshot.locations)
    counts: Counter = Counter()
    for tool in snapshot.tools:
        location_id = extract_record_id(tool.fields.location, RecordKind.LOCATION)
        counts[location_id if location_id in locations else None] += 1

    rows = [LocationCount(location=locations.get(key) if key else None, count=count) for key, count in counts.items()]
    rows.sort(
        key=lambda row: (
            -row.count,
            row.location is None,
            (row.location.fields.name or "").lower() if row.location else "",
            row.location.record_id if row.location else "",
        )
    )
    return rows[: max(int(limit), 0)]


def reconcile(
    snapshot: Snapshot,
    today: date,
    horizon_days: int = DEFAULT_HORIZON_DAYS,
    activity_limit: int = DEFAULT_ACTIVITY_LIMIT,
) -> Reconciliation:
    entries = open_checkouts(snapshot)
    return Reconciliation(
        today=today,
        horizon_days=horizon_days,
        total_tools=len(snapshot.tools),
        open_checkouts=tuple(entries),
        overdue=tuple(overdue_checkouts(entries, today)),
        inspection_alerts=tuple(inspection_alerts(snapshot.tools, today, horizon_days)),
        repair_needed=tuple(repair_needed(snapshot.tools)),
        activity=tuple(recent_activity(snapshot, activity_limit)),
        tools_by_location=tuple(tools_by_location(snapshot)),
    )


def integrity_findings(snapshot: Snapshot) -> list[IntegrityFinding]:
    tools = _index(snapshot.tools)
    employees = _index(snapshot.employees)
    checkouts = _index(snapshot.checkouts)
    locations = _index(snapshot.locations)

    open_per_tool = Counter(
        entry.tool.record_id for entry in open_checkouts(snapshot) if entry.tool is not None
    )
    multi_open = sorted(tool_id for tool_id, count in open_per_tool.items() if count > 1)

    returns_per_checkout = Counter(
        checkout_id
        for checkout_id in (extract_record_id(r.fields.checkout, RecordKind.CHECKOUT) for r in snapshot.returns)
        if checkout_id
    )
    multi_return = sorted(checkout_id for checkout_id, count in returns_per_checkout.items() if count > 1)

    dangling_returns = sorted(
        r.record_id
        for r in snapshot.returns
        if extract_record_id(r.fields.checkout, RecordKind.CHECKOUT) not in checkouts
    )
    dangling_tools = sorted(
        c.record_id for c in snapshot.checkouts if extract_record_id(c.fields.tool, RecordKind.TOOL) not in tools
    )
    dangling_employees = sorted(
        c.record_id
        for c in snapshot.checkouts
        if extract_record_id(c.fields.employee, RecordKind.EMPLOYEE) not in employees
    )
    dangling_locations = sorted(
        t.record_id
        for t in snapshot.tools
        if t.fields.location and extract_record_id(t.fields.location, RecordKind.LOCATION) not in locations
    )

    def _finding(name: str, ids: list[str]) -> IntegrityFinding:
        detail = f"count={len(ids)}"
        if ids:
            detail += f" ids={','.join(ids[:10])}"
        return IntegrityFinding(name, not ids, detail)

    return [
        _finding("checkouts:multiple_open_per_tool", multi_open),
        _finding("returns:multiple_per_checkout", multi_return),
        _finding("returns:dangling_checkout", dangling_returns),
        _finding("checkouts:dangling_tool", dangling_tools),
        _finding("checkouts:dangling_employee", dangling_employees),
        _finding("tools:dangling_location", dangling_locations),
    ]
