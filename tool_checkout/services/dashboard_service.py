from __future__ import annotations

from datetime import date, datetime
from typing import Optional

from schemas.records import Checkout, Employee, Return, StorageLocation, Tool
from services.reconciliation_service import (
    ActivityItem,
    InspectionAlert,
    LocationCount,
    OpenCheckout,
    OverdueCheckout,
    Reconciliation,
)
from services.reference_service import RecordKind, extract_record_id


UNKNOWN_TOOL = "Unbekanntes Werkzeug"
UNKNOWN_EMPLOYEE = "Unbekannt"
UNNAMED = "Unbenannt"
NO_LOCATION = "Ohne Standort"
EMPTY = "–"

LOCATION_TYPE_LABELS = {
    "werkstatt": "Werkstatt",
    "fahrzeug": "Fahrzeug",
    "baustelle": "Baustelle",
    "aussenlager": "Außenlager",
    "sonstiges": "Sonstiges",
}

CATEGORY_LABELS = {
    "akkuwerkzeug": "Akkuwerkzeug",
    "elektrowerkzeug": "Elektrowerkzeug",
    "handwerkzeug": "Handwerkzeug",
    "messgeraet": "Messgerät",
    "pruefgeraet": "Prüfgerät",
    "leiter": "Leiter",
    "kabel_leitungen": "Kabel/Leitungen",
    "sonstiges": "Sonstiges",
}

DEPARTMENT_LABELS = {
    "elektroinstallation": "Elektroinstallation",
    "wartung_service": "Wartung & Service",
    "bauleitung": "Bauleitung",
    "planung": "Planung",
    "lager": "Lager",
    "verwaltung": "Verwaltung",
}

CONDITION_LABELS = {
    "neu": "Neu",
    "sehr_gut": "Sehr gut",
    "gut": "Gut",
    "gebrauchsspuren": "Gebrauchsspuren",
    "reparaturbeduerftig": "Reparaturbedürftig",
    "defekt": "Defekt",
}

RETURN_CONDITION_LABELS = {
    "einwandfrei": "Einwandfrei",
    "leichte_gebrauchsspuren": "Leichte Gebrauchsspuren",
    "verschmutzt": "Verschmutzt",
    "beschaedigt": "Beschädigt",
    "defekt": "Defekt",
}


def get_labels() -> dict:
    return {
        "locationTypes": LOCATION_TYPE_LABELS,
        "categories": CATEGORY_LABELS,
        "departments": DEPARTMENT_LABELS,
        "conditions": CONDITION_LABELS,
        "returnConditions": RETURN_CONDITION_LABELS,
    }


def _label(labels: dict[str, str], value: Optional[str]) -> str:
    if not value:
        return EMPTY
    return labels.get(value, value)


def _iso(value: Optional[date | datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def tool_name(tool: Optional[Tool]) -> str:
    if tool is None:
        return UNKNOWN_TOOL
    return tool.fields.designation or UNNAMED


def employee_name(employee: Optional[Employee]) -> str:
    if employee is None:
        return UNKNOWN_EMPLOYEE
    return employee.full_name or UNKNOWN_EMPLOYEE


def location_name(location: Optional[StorageLocation]) -> str:
    if location is None:
        return NO_LOCATION
    return location.fields.name or UNNAMED


def serialize_employee(employee: Employee) -> dict:
    fields = employee.fields
    return {
        "recordID": employee.record_id,
        "firstName": fields.first_name,
        "lastName": fields.last_name,
        "displayName": employee_name(employee),
        "personnelNumber": fields.personnel_number,
        "department": fields.department,
        "departmentLabel": _label(DEPARTMENT_LABELS, fields.department),
        "phone": fields.phone,
        "email": fields.email,
        "notes": fields.notes,
        "createdAt": _iso(employee.createdat),
        "updatedAt": _iso(employee.updatedat),
    }


def serialize_tool(tool: Tool) -> dict:
    fields = tool.fields
    return {
        "recordID": tool.record_id,
        "designation": fields.designation,
        "displayName": tool_name(tool),
        "manufacturer": fields.manufacturer,
        "modelNumber": fields.model_number,
        "serialNumber": fields.serial_number,
        "category": fields.category,
        "categoryLabel": _label(CATEGORY_LABELS, fields.category),
        "purchaseDate": _iso(fields.purchase_date),
        "purchasePrice": fields.purchase_price,
        "locationID": extract_record_id(fields.location, RecordKind.LOCATION),
        "condition": fields.condition,
        "conditionLabel": _label(CONDITION_LABELS, fields.condition),
        "requiresInspection": bool(fields.requires_inspection),
        "nextInspection": _iso(fields.next_inspection),
        "notes": fields.notes,
        "createdAt": _iso(tool.createdat),
        "updatedAt": _iso(tool.updatedat),
    }


def serialize_location(location: StorageLocation) -> dict:
    fields = location.fields
    return {
        "recordID": location.record_id,
        "name": fields.name,
        "displayName": location_name(location),
        "description": fields.description,
        "type": fields.type,
        "typeLabel": _label(LOCATION_TYPE_LABELS, fields.type),
        "createdAt": _iso(location.createdat),
        "updatedAt": _iso(location.updatedat),
    }


def serialize_checkout(
    checkout: Checkout,
    tool: Optional[Tool] = None,
    employee: Optional[Employee] = None,
    is_returned: bool = False,
) -> dict:
    fields = checkout.fields
    return {
        "recordID": checkout.record_id,
        "toolID": extract_record_id(fields.tool, RecordKind.TOOL),
        "toolName": tool_name(tool),
        "employeeID": extract_record_id(fields.employee, RecordKind.EMPLOYEE),
        "employeeName": employee_name(employee),
        "issuedAt": _iso(fields.issued_at),
        "plannedReturnDate": _iso(fields.planned_return),
        "purpose": fields.purpose,
        "notes": fields.notes,
        "isReturned": is_returned,
        "createdAt": _iso(checkout.createdat),
    }


def serialize_return(record: Return) -> dict:
    fields = record.fields
    return {
        "recordID": record.record_id,
        "checkoutID": extract_record_id(fields.checkout, RecordKind.CHECKOUT),
        "returnedAt": _iso(fields.returned_at),
        "condition": fields.condition,
        "conditionLabel": _label(RETURN_CONDITION_LABELS, fields.condition),
        "damage": fields.damage,
        "notes": fields.notes,
        "locationID": extract_record_id(fields.location, RecordKind.LOCATION),
        "createdAt": _iso(record.createdat),
    }


def serialize_open_checkout(entry: OpenCheckout) -> dict:
    return serialize_checkout(entry.checkout, entry.tool, entry.employee)


def serialize_overdue(item: OverdueCheckout) -> dict:
    payload = serialize_open_checkout(item.entry)
    payload["daysOverdue"] = item.days_overdue
    return payload


def serialize_inspection_alert(alert: InspectionAlert) -> dict:
    return {
        "toolID": alert.tool.record_id,
        "toolName": tool_name(alert.tool),
        "serialNumber": alert.tool.fields.serial_number,
        "nextInspection": alert.due_date.isoformat(),
        "daysUntil": alert.days_until,
        "isOverdue": alert.is_overdue,
    }


def serialize_activity(item: ActivityItem) -> dict:
    return {
        "id": item.id,
        "type": item.type,
        "recordID": item.record_id,
        "date": _iso(item.date),
        "toolName": tool_name(item.tool),
        "employeeName": employee_name(item.employee),
    }


def serialize_location_count(row: LocationCount) -> dict:
    return {
        "locationID": row.location.record_id if row.location else None,
        "name": location_name(row.location),
        "count": row.count,
    }


def serialize_reconciliation(result: Reconciliation) -> dict:
    return {
        "today": result.today.isoformat(),
        "horizonDays": result.horizon_days,
        "kpis": {
            "totalTools": result.total_tools,
            "checkedOut": result.checked_out_count,
            "available": result.available_count,
            "overdue": len(result.overdue),
            "inspectionDue": len(result.inspection_due),
            "inspectionOverdue": len(result.inspection_overdue),
            "inspectionIssues": len(result.inspection_alerts),
            "repairNeeded": len(result.repair_needed),
        },
        "openCheckouts": [serialize_open_checkout(entry) for entry in result.open_checkouts],
        "overdueCheckouts": [serialize_overdue(item) for item in result.overdue],
        "inspectionOverdue": [serialize_inspection_alert(alert) for alert in result.inspection_overdue],
        "inspectionDue": [serialize_inspection_alert(alert) for alert in result.inspection_due],
        "repairNeeded": [serialize_tool(tool) for tool in result.repair_needed],
        "recentActivity": [serialize_activity(item) for item in result.activity],
        "toolsByLocation": [serialize_location_count(row) for row in result.tools_by_location],
    }
