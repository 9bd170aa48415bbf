from __future__ import annotations

import logging
import os
from datetime import datetime

from schemas.checkouts import CheckoutRequest, ReturnRequest
from schemas.records import Checkout, Return
from services.reconciliation_service import Snapshot, open_checkouts, returned_checkout_ids
from services.record_store_service import RecordStoreError, load_snapshot
from services.reference_service import RecordKind, create_record_url, extract_record_id
from services.store_fields_service import clean_text, format_date, format_timestamp


CHECKOUT_LOGGER = logging.getLogger("tool_checkout.checkout")

RETURN_CONDITION_TO_TOOL_CONDITION = {
    "beschaedigt": "reparaturbeduerftig",
    "defekt": "defekt",
}


class CheckoutConflictError(RuntimeError):
    pass


def _env_flag(name: str, default: bool = False) -> bool:
    raw = (os.environ.get(name) or "").strip().lower()
    if not raw:
        return default
    return raw in {"1", "true", "yes", "on"}


def single_open_checkout_enforced() -> bool:
    return _env_flag("ENFORCE_SINGLE_OPEN_CHECKOUT")


def tool_update_on_return_enabled() -> bool:
    return _env_flag("UPDATE_TOOL_ON_RETURN")


def build_checkout_fields(request: CheckoutRequest, now: datetime) -> dict:
    tool_id = clean_text(request.toolID)
    employee_id = clean_text(request.employeeID)
    if not tool_id or not employee_id:
        raise ValueError("toolID and employeeID are required.")

    fields = {
        "werkzeug": create_record_url(RecordKind.TOOL, tool_id),
        "mitarbeiter": create_record_url(RecordKind.EMPLOYEE, employee_id),
        "ausgabedatum": format_timestamp(now),
    }
    if request.plannedReturnDate:
        fields["geplantes_rueckgabedatum"] = format_date(request.plannedReturnDate)
    purpose = clean_text(request.purpose)
    if purpose:
        fields["verwendungszweck"] = purpose
    notes = clean_text(request.notes)
    if notes:
        fields["notizen"] = notes
    return fields


def build_return_fields(request: ReturnRequest, now: datetime) -> dict:
    checkout_id = clean_text(request.checkoutID)
    if not checkout_id:
        raise ValueError("checkoutID is required.")

    fields = {
        "ausgabe": create_record_url(RecordKind.CHECKOUT, checkout_id),
        "rueckgabedatum": format_timestamp(request.returnedAt or now),
    }
    if request.condition:
        fields["zustand_bei_rueckgabe"] = request.condition
    damage = clean_text(request.damage)
    if damage:
        fields["beschaedigungen"] = damage
    notes = clean_text(request.notes)
    if notes:
        fields["notizen_rueckgabe"] = notes
    location_id = clean_text(request.locationID)
    if location_id:
        fields["rueckgabe_lagerort"] = create_record_url(RecordKind.LOCATION, location_id)
    return fields


def ensure_tool_available(snapshot: Snapshot, tool_id: str) -> None:
    # Record ids are hex; references may carry either case.
    wanted = tool_id.lower()
    for entry in open_checkouts(snapshot):
        if (extract_record_id(entry.checkout.fields.tool, RecordKind.TOOL) or "").lower() == wanted:
            raise CheckoutConflictError(
                f"Tool {tool_id} is still checked out (checkout {entry.checkout.record_id})."
            )


def ensure_checkout_open(snapshot: Snapshot, checkout_id: str) -> None:
    if checkout_id.lower() in {returned.lower() for returned in returned_checkout_ids(snapshot.returns)}:
        raise CheckoutConflictError(f"Checkout {checkout_id} has already been returned.")


def checkout_tool(client, request: CheckoutRequest, now: datetime | None = None, enforce: bool | None = None) -> Checkout:
    fields = build_checkout_fields(request, now or datetime.now())
    if single_open_checkout_enforced() if enforce is None else enforce:
        ensure_tool_available(load_snapshot(client), clean_text(request.toolID))

    record = client.create_record(RecordKind.CHECKOUT, fields)
    CHECKOUT_LOGGER.info("Tool %s checked out to employee %s", request.toolID, request.employeeID)
    return record


def return_tool(
    client,
    request: ReturnRequest,
    now: datetime | None = None,
    enforce: bool | None = None,
    update_tool: bool | None = None,
) -> Return:
    fields = build_return_fields(request, now or datetime.now())
    checkout_id = clean_text(request.checkoutID)
    if single_open_checkout_enforced() if enforce is None else enforce:
        ensure_checkout_open(load_snapshot(client), checkout_id)

    record = client.create_record(RecordKind.RETURN, fields)
    CHECKOUT_LOGGER.info("Checkout %s returned", checkout_id)

    if tool_update_on_return_enabled() if update_tool is None else update_tool:
        _apply_return_to_tool(client, checkout_id, request)
    return record


def _apply_return_to_tool(client, checkout_id: str, request: ReturnRequest) -> None:
    tool_fields = {}
    location_id = clean_text(request.locationID)
    if location_id:
        tool_fields["aktueller_lagerort"] = create_record_url(RecordKind.LOCATION, location_id)
    condition = RETURN_CONDITION_TO_TOOL_CONDITION.get(request.condition or "")
    if condition:
        tool_fields["zustand"] = condition
    if not tool_fields:
        return

    # The return is already persisted; a failed follow-up only leaves the tool record stale.
    try:
        checkout = client.get_record(RecordKind.CHECKOUT, checkout_id)
        tool_id = extract_record_id(checkout.fields.tool, RecordKind.TOOL)
        if not tool_id:
            CHECKOUT_LOGGER.warning("Checkout %s has no tool reference; tool not updated", checkout_id)
            return
        client.update_record(RecordKind.TOOL, tool_id, tool_fields)
    except RecordStoreError as exc:
        CHECKOUT_LOGGER.warning("Could not update tool for checkout %s: %s", checkout_id, exc)
