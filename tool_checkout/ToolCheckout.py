import logging
import os
from contextlib import asynccontextmanager
from datetime import date, datetime

from dotenv import load_dotenv
from fastapi import Depends, FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

load_dotenv()

from db.deps import get_audit_db
from db.session import init_audit_db
from models.audit_models import AuditLog
from schemas.checkouts import (
    CheckoutRequest,
    CheckoutUpsert,
    EmployeeUpsert,
    LocationUpsert,
    ReturnRequest,
    ReturnUpsert,
    ToolUpsert,
)
from services.checkout_service import CheckoutConflictError, checkout_tool, return_tool
from services.dashboard_service import (
    get_labels,
    serialize_activity,
    serialize_checkout,
    serialize_employee,
    serialize_inspection_alert,
    serialize_location,
    serialize_open_checkout,
    serialize_overdue,
    serialize_reconciliation,
    serialize_return,
    serialize_tool,
)
from services.reconciliation_service import (
    Snapshot,
    inspection_alerts,
    integrity_findings,
    open_checkouts,
    overdue_checkouts,
    reconcile,
    recent_activity,
    repair_needed,
    returned_checkout_ids,
)
from services.record_store_service import RecordStoreClient, RecordStoreError, load_snapshot
from services.reference_service import RecordKind, extract_record_id
from services.store_fields_service import to_store_fields


def _int_env(name: str, default: int) -> int:
    try:
        return int(os.environ.get(name) or default)
    except ValueError:
        return default


def _parse_csv_env(name: str, default: str) -> list[str]:
    raw = os.environ.get(name, default)
    return [item.strip() for item in str(raw).split(",") if item.strip()]


INSPECTION_HORIZON_DAYS = _int_env("INSPECTION_HORIZON_DAYS", 30)
ACTIVITY_FEED_LIMIT = _int_env("ACTIVITY_FEED_LIMIT", 10)
AUDIT_LOGGER = logging.getLogger("tool_checkout.audit")


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_audit_db()
    yield


app = FastAPI(lifespan=lifespan)

_CORS_ALLOW_ORIGINS = _parse_csv_env(
    "CORS_ALLOW_ORIGINS",
    "http://127.0.0.1,http://localhost,http://127.0.0.1:5173,http://localhost:5173",
)
_CORS_ALLOW_CREDENTIALS = str(os.environ.get("CORS_ALLOW_CREDENTIALS", "true")).strip().lower() in {"1", "true", "yes", "on"}
if "*" in _CORS_ALLOW_ORIGINS:
    # Browsers reject wildcard origins with credentials.
    _CORS_ALLOW_CREDENTIALS = False

app.add_middleware(
    CORSMiddleware,
    allow_origins=_CORS_ALLOW_ORIGINS,
    allow_credentials=_CORS_ALLOW_CREDENTIALS,
    allow_methods=["*"],
    allow_headers=["*"],
)


def get_record_store() -> RecordStoreClient:
    return RecordStoreClient()


def get_today() -> date:
    return date.today()


def get_now() -> datetime:
    return datetime.now()


def log_audit(db: Session, entity_type: str, entity_id: str, action: str, details: str | None = None) -> None:
    try:
        db.add(
            AuditLog(
                EntityType=entity_type,
                EntityID=str(entity_id),
                Action=action,
                Details=details,
                CreatedAt=datetime.now(),
            )
        )
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        AUDIT_LOGGER.warning("Audit entry for %s %s %s not written: %s", entity_type, entity_id, action, exc)


def _load(client) -> Snapshot:
    try:
        return load_snapshot(client)
    except RecordStoreError as exc:
        raise HTTPException(status_code=503, detail=f"Record store unavailable: {exc}") from exc


def _list(client, kind: RecordKind) -> list:
    try:
        return client.list_records(kind)
    except RecordStoreError as exc:
        raise HTTPException(status_code=503, detail=f"Record store unavailable: {exc}") from exc


def _mutation_error(exc: RecordStoreError) -> HTTPException:
    if exc.status == 404:
        return HTTPException(status_code=404, detail="Record not found")
    return HTTPException(status_code=502, detail=f"Record store rejected the change: {exc}")


def _create(client, db: Session, kind: RecordKind, fields: dict):
    try:
        record = client.create_record(kind, fields)
    except RecordStoreError as exc:
        raise _mutation_error(exc) from exc
    log_audit(db, kind.value, record.record_id, "Create")
    return record


def _update(client, db: Session, kind: RecordKind, record_id: str, fields: dict):
    if not fields:
        raise HTTPException(status_code=400, detail="No fields supplied.")
    try:
        record = client.update_record(kind, record_id, fields)
    except RecordStoreError as exc:
        raise _mutation_error(exc) from exc
    log_audit(db, kind.value, record_id, "Update", ",".join(sorted(fields)))
    return record


def _delete(client, db: Session, kind: RecordKind, record_id: str) -> dict:
    try:
        client.delete_record(kind, record_id)
    except RecordStoreError as exc:
        raise _mutation_error(exc) from exc
    log_audit(db, kind.value, record_id, "Delete")
    return {"message": "Deleted"}


def _horizon(value: int | None) -> int:
    return value if value is not None else INSPECTION_HORIZON_DAYS


@app.get("/healthz")
def healthcheck():
    return {"status": "ok"}


@app.get("/api/healthz")
def healthcheck_api(client=Depends(get_record_store)):
    try:
        client.list_records(RecordKind.LOCATION)
        return {"status": "ok"}
    except RecordStoreError as exc:
        raise HTTPException(status_code=503, detail=f"record_store_unavailable: {exc}") from exc


@app.get("/api/labels")
def get_label_catalog():
    return get_labels()


@app.get("/api/dashboard")
def get_dashboard(
    horizon_days: int | None = Query(None, ge=1, le=365, alias="horizonDays"),
    activity_limit: int | None = Query(None, ge=1, le=100, alias="activityLimit"),
    client=Depends(get_record_store),
    today: date = Depends(get_today),
):
    snapshot = _load(client)
    result = reconcile(
        snapshot,
        today,
        horizon_days=_horizon(horizon_days),
        activity_limit=activity_limit or ACTIVITY_FEED_LIMIT,
    )
    return serialize_reconciliation(result)


@app.get("/api/checkouts/open")
def get_open_checkouts(client=Depends(get_record_store)):
    snapshot = _load(client)
    return [serialize_open_checkout(entry) for entry in open_checkouts(snapshot)]


@app.get("/api/checkouts/overdue")
def get_overdue_checkouts(client=Depends(get_record_store), today: date = Depends(get_today)):
    snapshot = _load(client)
    return [serialize_overdue(item) for item in overdue_checkouts(open_checkouts(snapshot), today)]


@app.get("/api/equipment/inspection-alerts")
def get_inspection_alerts(
    horizon_days: int | None = Query(None, ge=1, le=365, alias="horizonDays"),
    client=Depends(get_record_store),
    today: date = Depends(get_today),
):
    tools = _list(client, RecordKind.TOOL)
    return [serialize_inspection_alert(alert) for alert in inspection_alerts(tools, today, _horizon(horizon_days))]


@app.get("/api/equipment/repair-needed")
def get_repair_needed(client=Depends(get_record_store)):
    return [serialize_tool(tool) for tool in repair_needed(_list(client, RecordKind.TOOL))]


@app.get("/api/activity")
def get_activity(
    limit: int | None = Query(None, ge=1, le=100),
    client=Depends(get_record_store),
):
    snapshot = _load(client)
    return [serialize_activity(item) for item in recent_activity(snapshot, limit or ACTIVITY_FEED_LIMIT)]


@app.get("/api/integrity")
def get_integrity(client=Depends(get_record_store)):
    snapshot = _load(client)
    return [
        {"name": finding.name, "ok": finding.ok, "detail": finding.detail}
        for finding in integrity_findings(snapshot)
    ]


@app.get("/api/employees")
def get_employees(client=Depends(get_record_store)):
    employees = _list(client, RecordKind.EMPLOYEE)
    employees.sort(key=lambda item: ((item.fields.last_name or "").lower(), (item.fields.first_name or "").lower(), item.record_id))
    return [serialize_employee(employee) for employee in employees]


@app.post("/api/employees")
def create_employee(payload: EmployeeUpsert, client=Depends(get_record_store), db: Session = Depends(get_audit_db)):
    record = _create(client, db, RecordKind.EMPLOYEE, to_store_fields(RecordKind.EMPLOYEE, payload))
    return serialize_employee(record)


@app.put("/api/employees/{record_id}")
def update_employee(
    record_id: str,
    payload: EmployeeUpsert,
    client=Depends(get_record_store),
    db: Session = Depends(get_audit_db),
):
    fields = to_store_fields(RecordKind.EMPLOYEE, payload, partial=True)
    return serialize_employee(_update(client, db, RecordKind.EMPLOYEE, record_id, fields))


@app.delete("/api/employees/{record_id}")
def delete_employee(record_id: str, client=Depends(get_record_store), db: Session = Depends(get_audit_db)):
    return _delete(client, db, RecordKind.EMPLOYEE, record_id)


@app.get("/api/tools")
def get_tools(client=Depends(get_record_store)):
    tools = _list(client, RecordKind.TOOL)
    tools.sort(key=lambda item: ((item.fields.designation or "").lower(), item.record_id))
    return [serialize_tool(tool) for tool in tools]


@app.post("/api/tools")
def create_tool(payload: ToolUpsert, client=Depends(get_record_store), db: Session = Depends(get_audit_db)):
    record = _create(client, db, RecordKind.TOOL, to_store_fields(RecordKind.TOOL, payload))
    return serialize_tool(record)


@app.put("/api/tools/{record_id}")
def update_tool(record_id: str, payload: ToolUpsert, client=Depends(get_record_store), db: Session = Depends(get_audit_db)):
    fields = to_store_fields(RecordKind.TOOL, payload, partial=True)
    return serialize_tool(_update(client, db, RecordKind.TOOL, record_id, fields))


@app.delete("/api/tools/{record_id}")
def delete_tool(record_id: str, client=Depends(get_record_store), db: Session = Depends(get_audit_db)):
    return _delete(client, db, RecordKind.TOOL, record_id)


@app.get("/api/locations")
def get_locations(client=Depends(get_record_store)):
    locations = _list(client, RecordKind.LOCATION)
    locations.sort(key=lambda item: ((item.fields.name or "").lower(), item.record_id))
    return [serialize_location(location) for location in locations]


@app.post("/api/locations")
def create_location(payload: LocationUpsert, client=Depends(get_record_store), db: Session = Depends(get_audit_db)):
    record = _create(client, db, RecordKind.LOCATION, to_store_fields(RecordKind.LOCATION, payload))
    return serialize_location(record)


@app.put("/api/locations/{record_id}")
def update_location(
    record_id: str,
    payload: LocationUpsert,
    client=Depends(get_record_store),
    db: Session = Depends(get_audit_db),
):
    fields = to_store_fields(RecordKind.LOCATION, payload, partial=True)
    return serialize_location(_update(client, db, RecordKind.LOCATION, record_id, fields))


@app.delete("/api/locations/{record_id}")
def delete_location(record_id: str, client=Depends(get_record_store), db: Session = Depends(get_audit_db)):
    return _delete(client, db, RecordKind.LOCATION, record_id)


@app.get("/api/checkouts")
def get_checkouts(client=Depends(get_record_store)):
    snapshot = _load(client)
    returned = returned_checkout_ids(snapshot.returns)
    tools = {tool.record_id: tool for tool in snapshot.tools}
    employees = {employee.record_id: employee for employee in snapshot.employees}
    rows = []
    for checkout in snapshot.checkouts:
        tool_id = extract_record_id(checkout.fields.tool, RecordKind.TOOL)
        employee_id = extract_record_id(checkout.fields.employee, RecordKind.EMPLOYEE)
        rows.append(
            serialize_checkout(
                checkout,
                tools.get(tool_id) if tool_id else None,
                employees.get(employee_id) if employee_id else None,
                is_returned=checkout.record_id in returned,
            )
        )
    rows.sort(key=lambda row: row["recordID"])
    rows.sort(key=lambda row: row["issuedAt"] or row["createdAt"] or "", reverse=True)
    return rows


@app.post("/api/checkouts")
def create_checkout(
    payload: CheckoutRequest,
    client=Depends(get_record_store),
    db: Session = Depends(get_audit_db),
    now: datetime = Depends(get_now),
):
    try:
        record = checkout_tool(client, payload, now=now)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except CheckoutConflictError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    except RecordStoreError as exc:
        raise _mutation_error(exc) from exc
    log_audit(db, RecordKind.CHECKOUT.value, record.record_id, "Checkout", f"tool={payload.toolID} employee={payload.employeeID}")
    return serialize_checkout(record)


@app.put("/api/checkouts/{record_id}")
def update_checkout(
    record_id: str,
    payload: CheckoutUpsert,
    client=Depends(get_record_store),
    db: Session = Depends(get_audit_db),
):
    fields = to_store_fields(RecordKind.CHECKOUT, payload, partial=True)
    return serialize_checkout(_update(client, db, RecordKind.CHECKOUT, record_id, fields))


@app.delete("/api/checkouts/{record_id}")
def delete_checkout(record_id: str, client=Depends(get_record_store), db: Session = Depends(get_audit_db)):
    return _delete(client, db, RecordKind.CHECKOUT, record_id)


@app.get("/api/returns")
def get_returns(client=Depends(get_record_store)):
    records = _list(client, RecordKind.RETURN)
    rows = [serialize_return(record) for record in records]
    rows.sort(key=lambda row: row["recordID"])
    rows.sort(key=lambda row: row["returnedAt"] or row["createdAt"] or "", reverse=True)
    return rows


@app.post("/api/returns")
def create_return(
    payload: ReturnRequest,
    client=Depends(get_record_store),
    db: Session = Depends(get_audit_db),
    now: datetime = Depends(get_now),
):
    try:
        record = return_tool(client, payload, now=now)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except CheckoutConflictError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    except RecordStoreError as exc:
        raise _mutation_error(exc) from exc
    log_audit(db, RecordKind.RETURN.value, record.record_id, "Return", f"checkout={payload.checkoutID}")
    return serialize_return(record)


@app.put("/api/returns/{record_id}")
def update_return(
    record_id: str,
    payload: ReturnUpsert,
    client=Depends(get_record_store),
    db: Session = Depends(get_audit_db),
):
    fields = to_store_fields(RecordKind.RETURN, payload, partial=True)
    return serialize_return(_update(client, db, RecordKind.RETURN, record_id, fields))


@app.delete("/api/returns/{record_id}")
def delete_return(record_id: str, client=Depends(get_record_store), db: Session = Depends(get_audit_db)):
    return _delete(client, db, RecordKind.RETURN, record_id)


@app.get("/api/audit")
def get_audit_log(limit: int = Query(50, ge=1, le=500), db: Session = Depends(get_audit_db)):
    entries = db.execute(select(AuditLog).order_by(AuditLog.AuditID.desc()).limit(limit)).scalars().all()
    return [
        {
            "auditID": entry.AuditID,
            "entityType": entry.EntityType,
            "entityID": entry.EntityID,
            "action": entry.Action,
            "details": entry.Details,
            "createdAt": entry.CreatedAt,
        }
        for entry in entries
    ]
