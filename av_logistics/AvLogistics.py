import logging
import os
from datetime import date, datetime

from dotenv import load_dotenv
from fastapi import Depends, FastAPI, Header, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import or_, select, text
from sqlalchemy.orm import Session, selectinload

load_dotenv()

from av_logistics.db.deps import get_db
from av_logistics.models.logistics_models import (
    AuditLog,
    Equipment,
    EquipmentStatus,
    Event,
    EventEquipment,
    Maintenance,
    User,
)
from av_logistics.schemas.equipment import EquipmentStatusRequest, EquipmentUpsert
from av_logistics.schemas.events import (
    CreateEventDto,
    ReserveEquipmentRequest,
    ReturnEquipmentRequest,
    UpdateEventDto,
    UpdateReservationRequest,
)
from av_logistics.schemas.maintenance import (
    CompleteMaintenanceRequest,
    CreateMaintenanceDto,
    MaintenanceLogRequest,
    UpdateMaintenanceDto,
)
from av_logistics.services import ledger_service as ledger
from av_logistics.services.equipment_service import (
    generate_equipment_reference,
    serialize_equipment,
    serialize_status,
)
from av_logistics.services.errors import LedgerError, NotFoundError, PermissionDeniedError, ValidationError
from av_logistics.services.event_service import serialize_event, serialize_reservation, validate_event_dates
from av_logistics.services.maintenance_service import (
    add_maintenance_log,
    require_technician,
    serialize_maintenance,
    serialize_maintenance_log,
)

app = FastAPI()


def _parse_csv_env(name: str, default: str) -> list[str]:
    raw = os.environ.get(name, default)
    return [item.strip() for item in str(raw).split(",") if item.strip()]


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
    allow_headers=["*"]
)

MAINTENANCE_POLICY = ledger.resolve_maintenance_policy(os.environ.get("MAINTENANCE_POLICY"))
ROLE_ADMIN = "ADMIN"
ROLE_MAINTENANCE = "MAINTENANCE"
ROLE_TECHNICIEN = "TECHNICIEN"
STOCK_MANAGER_ROLES = {ROLE_ADMIN, ROLE_MAINTENANCE}
MAINTENANCE_ROLES = {ROLE_ADMIN, ROLE_MAINTENANCE, ROLE_TECHNICIEN}
API_LOGGER = logging.getLogger("av_logistics.api")


@app.exception_handler(LedgerError)
def handle_ledger_error(request: Request, exc: LedgerError):
    API_LOGGER.warning(
        "Request rejected method=%s path=%s status=%s reason=%s",
        request.method,
        request.url.path,
        exc.status_code,
        exc.message,
    )
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


def log_audit(db: Session, entity_type: str, entity_id: int, action: str, details: str | None = None, user_id: int | None = None) -> None:
    db.add(
        AuditLog(
            EntityType=entity_type,
            EntityID=entity_id,
            Action=action,
            Details=details,
            UserID=user_id,
            CreatedAt=datetime.now(),
        )
    )


def _require_actor(db: Session, x_user_id: str | None) -> User:
    try:
        user_id = int(x_user_id or 0)
    except (TypeError, ValueError):
        user_id = 0
    if user_id <= 0:
        raise HTTPException(status_code=401, detail="Not logged in.")
    user = db.get(User, user_id)
    if not user:
        raise HTTPException(status_code=401, detail="Not logged in.")
    if not user.IsActive:
        raise PermissionDeniedError("Account is deactivated")
    return user


def _require_role(user: User, roles: set[str]) -> User:
    if (user.Role or "").strip().upper() not in roles:
        raise PermissionDeniedError("Insufficient permissions")
    return user


def _map_equipment_field(field: str) -> str:
    mapping = {
        "name": "Name",
        "categoryName": "CategoryName",
        "brand": "Brand",
        "model": "Model",
        "description": "Description",
        "technicalSpecs": "TechnicalSpecs",
        "quantityTotal": "QuantityTotal",
        "purchasePrice": "PurchasePrice",
        "dailyRentalPrice": "DailyRentalPrice",
        "purchaseDate": "PurchaseDate",
        "warrantyEndDate": "WarrantyEndDate",
        "supplier": "Supplier",
        "weightKg": "WeightKg",
    }
    return mapping.get(field, field)


def _map_event_field(field: str) -> str:
    mapping = {
        "eventName": "EventName",
        "clientName": "ClientName",
        "contactPerson": "ContactPerson",
        "phone": "Phone",
        "email": "Email",
        "address": "Address",
        "installationDate": "InstallationDate",
        "eventDate": "EventDate",
        "dismantlingDate": "DismantlingDate",
        "category": "Category",
        "status": "Status",
        "notes": "Notes",
        "budget": "Budget",
        "participantCount": "ParticipantCount",
        "eventType": "EventType",
    }
    return mapping.get(field, field)


def _map_maintenance_field(field: str) -> str:
    mapping = {
        "problemDescription": "ProblemDescription",
        "technicianID": "TechnicianID",
        "priority": "Priority",
        "expectedEndDate": "ExpectedEndDate",
        "cost": "Cost",
        "status": "Status",
    }
    return mapping.get(field, field)


EQUIPMENT_REQUIRED_FIELDS = ("name", "categoryName", "quantityTotal")
EVENT_REQUIRED_FIELDS = ("eventName", "clientName", "installationDate", "eventDate", "dismantlingDate", "category", "status")
MAINTENANCE_REQUIRED_FIELDS = ("problemDescription", "technicianID", "priority", "status")


def _reject_cleared_fields(changes: dict, required: tuple[str, ...]) -> None:
    for field in required:
        if field not in changes:
            continue
        value = changes[field]
        if value is None or (isinstance(value, str) and not value.strip()):
            raise ValidationError(f"{field} cannot be empty")


def _get_event_or_404(db: Session, event_id: int) -> Event:
    event = db.get(Event, event_id)
    if not event:
        raise NotFoundError("Event not found")
    return event


def _get_maintenance_or_404(db: Session, maintenance_id: int) -> Maintenance:
    maintenance = db.get(Maintenance, maintenance_id)
    if not maintenance:
        raise NotFoundError("Maintenance record not found")
    return maintenance


@app.get("/healthz")
def healthcheck():
    return {"status": "ok"}


@app.get("/api/healthz")
def healthcheck_api(db: Session = Depends(get_db)):
    try:
        db.execute(text("SELECT 1"))
        return {"status": "ok", "maintenancePolicy": MAINTENANCE_POLICY}
    except Exception as exc:
        raise HTTPException(status_code=503, detail=f"db_unavailable: {exc}") from exc


# Equipment


@app.get("/api/equipment")
def get_equipment(
    search: str | None = Query(None),
    category: str | None = Query(None),
    available_only: bool = Query(False, alias="availableOnly"),
    db: Session = Depends(get_db),
):
    stmt = select(Equipment).order_by(Equipment.Name)
    if search:
        pattern = f"%{search.strip()}%"
        stmt = stmt.where(or_(Equipment.Name.ilike(pattern), Equipment.Reference.ilike(pattern)))
    if category:
        stmt = stmt.where(Equipment.CategoryName == category)
    if available_only:
        stmt = stmt.where(Equipment.QuantityAvailable > 0)
    return [serialize_equipment(item) for item in db.execute(stmt).scalars().all()]


@app.get("/api/equipment/{equipment_id}")
def get_equipment_item(equipment_id: int, db: Session = Depends(get_db)):
    equipment = db.get(Equipment, equipment_id)
    if not equipment:
        raise NotFoundError("Equipment not found")
    payload = serialize_equipment(equipment)
    recent = db.execute(
        select(EquipmentStatus)
        .where(EquipmentStatus.EquipmentID == equipment_id)
        .order_by(EquipmentStatus.StatusID.desc())
        .limit(10)
    ).scalars().all()
    payload["statusHistory"] = [serialize_status(entry) for entry in recent]
    return payload


@app.post("/api/equipment", status_code=201)
def create_equipment(
    payload: EquipmentUpsert,
    db: Session = Depends(get_db),
    x_user_id: str | None = Header(None, alias="X-User-ID"),
):
    actor = _require_role(_require_actor(db, x_user_id), STOCK_MANAGER_ROLES)
    if not (payload.name or "").strip():
        raise HTTPException(status_code=400, detail="name is required")
    if not (payload.categoryName or "").strip():
        raise HTTPException(status_code=400, detail="categoryName is required")

    equipment = Equipment()
    for field, value in payload.model_dump(exclude_unset=True).items():
        setattr(equipment, _map_equipment_field(field), value)
    equipment.Reference = generate_equipment_reference(db, equipment.CategoryName)
    equipment.CreatedDate = datetime.now()
    equipment.UpdatedDate = datetime.now()

    db.add(equipment)
    ledger.initialize_stock(db, equipment, actor.UserID)
    log_audit(db, "Equipment", equipment.EquipmentID, "Create", f"Equipment {equipment.Reference} created", user_id=actor.UserID)
    db.commit()
    db.refresh(equipment)
    return serialize_equipment(equipment)


@app.put("/api/equipment/{equipment_id}")
def update_equipment(
    equipment_id: int,
    payload: EquipmentUpsert,
    db: Session = Depends(get_db),
    x_user_id: str | None = Header(None, alias="X-User-ID"),
):
    actor = _require_role(_require_actor(db, x_user_id), STOCK_MANAGER_ROLES)
    changes = payload.model_dump(exclude_unset=True)
    _reject_cleared_fields(changes, EQUIPMENT_REQUIRED_FIELDS)
    new_total = changes.pop("quantityTotal", None)

    equipment = ledger.lock_equipment(db, equipment_id)
    if new_total is not None:
        ledger.resize_stock(db, equipment_id, new_total, actor.UserID)
    for field, value in changes.items():
        setattr(equipment, _map_equipment_field(field), value)
    equipment.UpdatedDate = datetime.now()

    log_audit(db, "Equipment", equipment_id, "Update", ", ".join(sorted(payload.model_fields_set)), user_id=actor.UserID)
    db.commit()
    db.refresh(equipment)
    return serialize_equipment(equipment)


@app.delete("/api/equipment/{equipment_id}")
def delete_equipment(
    equipment_id: int,
    db: Session = Depends(get_db),
    x_user_id: str | None = Header(None, alias="X-User-ID"),
):
    actor = _require_role(_require_actor(db, x_user_id), {ROLE_ADMIN})
    equipment = ledger.ensure_removable(db, equipment_id)
    log_audit(db, "Equipment", equipment_id, "Delete", f"Equipment {equipment.Reference} deleted", user_id=actor.UserID)
    db.delete(equipment)
    db.commit()
    return {"message": "Equipment deleted successfully"}


@app.get("/api/equipment/{equipment_id}/status-history")
def get_equipment_status_history(equipment_id: int, db: Session = Depends(get_db)):
    equipment = db.get(Equipment, equipment_id)
    if not equipment:
        raise NotFoundError("Equipment not found")
    history = db.execute(
        select(EquipmentStatus)
        .where(EquipmentStatus.EquipmentID == equipment_id)
        .order_by(EquipmentStatus.StatusID.desc())
    ).scalars().all()
    return {
        "equipment": {
            "equipmentID": equipment.EquipmentID,
            "name": equipment.Name,
            "reference": equipment.Reference,
        },
        "statusHistory": [serialize_status(entry) for entry in history],
    }


@app.post("/api/equipment/{equipment_id}/status")
def update_equipment_status(
    equipment_id: int,
    payload: EquipmentStatusRequest,
    db: Session = Depends(get_db),
    x_user_id: str | None = Header(None, alias="X-User-ID"),
):
    actor = _require_role(_require_actor(db, x_user_id), STOCK_MANAGER_ROLES)
    entry = ledger.apply_status_override(
        db,
        equipment_id,
        payload.status,
        payload.quantity,
        actor.UserID,
        event_id=payload.relatedEventID,
        maintenance_id=payload.relatedMaintenanceID,
        notes=payload.notes,
    )
    log_audit(
        db,
        "Equipment",
        equipment_id,
        "StatusOverride",
        f"{payload.status} x{payload.quantity}",
        user_id=actor.UserID,
    )
    db.commit()
    equipment = db.get(Equipment, equipment_id)
    return {
        "status": serialize_status(entry),
        "equipment": serialize_equipment(equipment),
    }


@app.get("/api/equipment/{equipment_id}/availability")
def get_equipment_availability(equipment_id: int, db: Session = Depends(get_db)):
    equipment = db.get(Equipment, equipment_id)
    if not equipment:
        raise NotFoundError("Equipment not found")
    return ledger.reconcile(db, equipment)


# Events


@app.get("/api/events")
def get_events(
    status: str | None = Query(None),
    category: str | None = Query(None),
    date_from: date | None = Query(None, alias="dateFrom"),
    date_to: date | None = Query(None, alias="dateTo"),
    db: Session = Depends(get_db),
):
    stmt = select(Event).order_by(Event.EventDate)
    if status:
        stmt = stmt.where(Event.Status == status)
    if category:
        stmt = stmt.where(Event.Category == category)
    if date_from:
        stmt = stmt.where(Event.EventDate >= date_from)
    if date_to:
        stmt = stmt.where(Event.EventDate <= date_to)
    return [serialize_event(event) for event in db.execute(stmt).scalars().all()]


@app.get("/api/events/{event_id}")
def get_event(event_id: int, db: Session = Depends(get_db)):
    stmt = (
        select(Event)
        .options(selectinload(Event.Reservations).selectinload(EventEquipment.Equipment))
        .where(Event.EventID == event_id)
    )
    event = db.execute(stmt).scalars().first()
    if not event:
        raise NotFoundError("Event not found")
    return serialize_event(event, include_reservations=True)


@app.post("/api/events", status_code=201)
def create_event(
    payload: CreateEventDto,
    db: Session = Depends(get_db),
    x_user_id: str | None = Header(None, alias="X-User-ID"),
):
    actor = _require_actor(db, x_user_id)
    validate_event_dates(payload.installationDate, payload.eventDate, payload.dismantlingDate)

    event = Event()
    for field, value in payload.model_dump().items():
        setattr(event, _map_event_field(field), value)
    event.CreatedBy = actor.UserID
    event.CreatedDate = datetime.now()
    event.UpdatedDate = datetime.now()
    db.add(event)
    db.flush()
    log_audit(db, "Event", event.EventID, "Create", f"Event {event.EventName} created", user_id=actor.UserID)
    db.commit()
    db.refresh(event)
    return serialize_event(event)


@app.put("/api/events/{event_id}")
def update_event(
    event_id: int,
    payload: UpdateEventDto,
    db: Session = Depends(get_db),
    x_user_id: str | None = Header(None, alias="X-User-ID"),
):
    actor = _require_actor(db, x_user_id)
    event = _get_event_or_404(db, event_id)
    changes = payload.model_dump(exclude_unset=True)
    _reject_cleared_fields(changes, EVENT_REQUIRED_FIELDS)
    validate_event_dates(
        changes.get("installationDate") or event.InstallationDate,
        changes.get("eventDate") or event.EventDate,
        changes.get("dismantlingDate") or event.DismantlingDate,
    )
    for field, value in changes.items():
        setattr(event, _map_event_field(field), value)
    event.UpdatedDate = datetime.now()
    log_audit(db, "Event", event_id, "Update", ", ".join(sorted(changes)), user_id=actor.UserID)
    db.commit()
    db.refresh(event)
    return serialize_event(event)


@app.delete("/api/events/{event_id}")
def delete_event(
    event_id: int,
    db: Session = Depends(get_db),
    x_user_id: str | None = Header(None, alias="X-User-ID"),
):
    actor = _require_role(_require_actor(db, x_user_id), {ROLE_ADMIN})
    event = _get_event_or_404(db, event_id)
    if event.Status == "EN_COURS":
        raise ValidationError("Cannot delete event that is currently in progress")

    released = ledger.release_event(db, event, actor.UserID)
    log_audit(db, "Event", event_id, "Delete", f"Event deleted, released {released} items", user_id=actor.UserID)
    db.delete(event)
    db.commit()
    return {"message": "Event deleted successfully", "releasedQuantity": released}


@app.post("/api/events/{event_id}/equipment", status_code=201)
def reserve_equipment(
    event_id: int,
    payload: ReserveEquipmentRequest,
    db: Session = Depends(get_db),
    x_user_id: str | None = Header(None, alias="X-User-ID"),
):
    actor = _require_actor(db, x_user_id)
    event = _get_event_or_404(db, event_id)
    reservation = ledger.reserve(
        db,
        event,
        payload.equipmentID,
        payload.quantityReserved,
        actor.UserID,
        notes=payload.notes,
    )
    log_audit(
        db,
        "Event",
        event_id,
        "ReserveEquipment",
        f"equipment={payload.equipmentID} quantity={payload.quantityReserved}",
        user_id=actor.UserID,
    )
    db.commit()
    db.refresh(reservation)
    return serialize_reservation(reservation)


@app.put("/api/events/{event_id}/equipment/{reservation_id}")
def update_equipment_reservation(
    event_id: int,
    reservation_id: int,
    payload: UpdateReservationRequest,
    db: Session = Depends(get_db),
    x_user_id: str | None = Header(None, alias="X-User-ID"),
):
    actor = _require_actor(db, x_user_id)
    reservation = ledger.modify_reservation(
        db,
        event_id,
        reservation_id,
        actor.UserID,
        quantity_reserved=payload.quantityReserved,
        quantity_returned=payload.quantityReturned,
        status=payload.status,
        notes=payload.notes,
    )
    log_audit(
        db,
        "Event",
        event_id,
        "UpdateReservation",
        f"reservation={reservation_id} reserved={reservation.QuantityReserved} returned={reservation.QuantityReturned}",
        user_id=actor.UserID,
    )
    db.commit()
    db.refresh(reservation)
    return serialize_reservation(reservation)


@app.post("/api/events/{event_id}/equipment/{reservation_id}/return")
def return_equipment(
    event_id: int,
    reservation_id: int,
    payload: ReturnEquipmentRequest,
    db: Session = Depends(get_db),
    x_user_id: str | None = Header(None, alias="X-User-ID"),
):
    actor = _require_actor(db, x_user_id)
    reservation = ledger.return_reservation(
        db,
        event_id,
        reservation_id,
        payload.quantityReturned,
        actor.UserID,
        notes=payload.notes,
    )
    log_audit(
        db,
        "Event",
        event_id,
        "ReturnEquipment",
        f"reservation={reservation_id} quantity={payload.quantityReturned}",
        user_id=actor.UserID,
    )
    db.commit()
    db.refresh(reservation)
    return serialize_reservation(reservation)


@app.delete("/api/events/{event_id}/equipment/{reservation_id}")
def remove_equipment_reservation(
    event_id: int,
    reservation_id: int,
    db: Session = Depends(get_db),
    x_user_id: str | None = Header(None, alias="X-User-ID"),
):
    actor = _require_actor(db, x_user_id)
    released = ledger.remove_reservation(db, event_id, reservation_id, actor.UserID)
    log_audit(
        db,
        "Event",
        event_id,
        "RemoveReservation",
        f"reservation={reservation_id} released={released}",
        user_id=actor.UserID,
    )
    db.commit()
    return {"message": "Equipment removed from event", "releasedQuantity": released}


# Maintenance


@app.get("/api/maintenances")
def get_maintenances(
    equipment_id: int | None = Query(None, alias="equipmentID"),
    technician_id: int | None = Query(None, alias="technicianID"),
    status: str | None = Query(None),
    priority: str | None = Query(None),
    db: Session = Depends(get_db),
):
    stmt = select(Maintenance).options(selectinload(Maintenance.Equipment)).order_by(Maintenance.MaintenanceID.desc())
    if equipment_id:
        stmt = stmt.where(Maintenance.EquipmentID == equipment_id)
    if technician_id:
        stmt = stmt.where(Maintenance.TechnicianID == technician_id)
    if status:
        stmt = stmt.where(Maintenance.Status == status)
    if priority:
        stmt = stmt.where(Maintenance.Priority == priority)
    return [serialize_maintenance(item) for item in db.execute(stmt).scalars().all()]


@app.get("/api/maintenances/{maintenance_id}")
def get_maintenance(maintenance_id: int, db: Session = Depends(get_db)):
    stmt = (
        select(Maintenance)
        .options(selectinload(Maintenance.Equipment), selectinload(Maintenance.Logs))
        .where(Maintenance.MaintenanceID == maintenance_id)
    )
    maintenance = db.execute(stmt).scalars().first()
    if not maintenance:
        raise NotFoundError("Maintenance record not found")
    return serialize_maintenance(maintenance, include_logs=True)


@app.post("/api/maintenances", status_code=201)
def create_maintenance(
    payload: CreateMaintenanceDto,
    db: Session = Depends(get_db),
    x_user_id: str | None = Header(None, alias="X-User-ID"),
):
    actor = _require_role(_require_actor(db, x_user_id), MAINTENANCE_ROLES)
    if not db.get(Equipment, payload.equipmentID):
        raise NotFoundError("Equipment not found")
    require_technician(db, payload.technicianID)

    maintenance = Maintenance(
        EquipmentID=payload.equipmentID,
        ProblemDescription=payload.problemDescription,
        TechnicianID=payload.technicianID,
        Priority=payload.priority,
        StartDate=payload.startDate,
        ExpectedEndDate=payload.expectedEndDate,
        Status="EN_ATTENTE",
        CreatedDate=datetime.now(),
        UpdatedDate=datetime.now(),
    )
    ledger.open_maintenance(db, maintenance, actor.UserID, MAINTENANCE_POLICY)
    log_audit(
        db,
        "Maintenance",
        maintenance.MaintenanceID,
        "Create",
        f"equipment={payload.equipmentID} held={maintenance.QuantityHeld} policy={MAINTENANCE_POLICY}",
        user_id=actor.UserID,
    )
    db.commit()
    db.refresh(maintenance)
    return serialize_maintenance(maintenance)


@app.put("/api/maintenances/{maintenance_id}")
def update_maintenance(
    maintenance_id: int,
    payload: UpdateMaintenanceDto,
    db: Session = Depends(get_db),
    x_user_id: str | None = Header(None, alias="X-User-ID"),
):
    actor = _require_role(_require_actor(db, x_user_id), MAINTENANCE_ROLES)
    maintenance = _get_maintenance_or_404(db, maintenance_id)
    if maintenance.Status == "TERMINE":
        raise ValidationError("Maintenance is already completed")

    changes = payload.model_dump(exclude_unset=True)
    _reject_cleared_fields(changes, MAINTENANCE_REQUIRED_FIELDS)
    if changes.get("technicianID"):
        require_technician(db, changes["technicianID"])
    previous_status = maintenance.Status
    for field, value in changes.items():
        setattr(maintenance, _map_maintenance_field(field), value)
    maintenance.UpdatedDate = datetime.now()
    if maintenance.Status != previous_status:
        add_maintenance_log(
            db,
            maintenance,
            actor.UserID,
            f"Status changed from {previous_status} to {maintenance.Status}",
            "STATUS_CHANGE",
        )
    log_audit(db, "Maintenance", maintenance_id, "Update", ", ".join(sorted(changes)), user_id=actor.UserID)
    db.commit()
    db.refresh(maintenance)
    return serialize_maintenance(maintenance)


@app.post("/api/maintenances/{maintenance_id}/complete")
def complete_maintenance(
    maintenance_id: int,
    payload: CompleteMaintenanceRequest,
    db: Session = Depends(get_db),
    x_user_id: str | None = Header(None, alias="X-User-ID"),
):
    actor = _require_role(_require_actor(db, x_user_id), MAINTENANCE_ROLES)
    maintenance = _get_maintenance_or_404(db, maintenance_id)
    ledger.complete_maintenance(
        db,
        maintenance,
        actor.UserID,
        actual_end_date=payload.actualEndDate,
        cost=payload.cost,
        solution_description=payload.solutionDescription,
    )
    log_audit(
        db,
        "Maintenance",
        maintenance_id,
        "Complete",
        f"released={maintenance.QuantityHeld}",
        user_id=actor.UserID,
    )
    db.commit()
    db.refresh(maintenance)
    return serialize_maintenance(maintenance)


@app.delete("/api/maintenances/{maintenance_id}")
def delete_maintenance(
    maintenance_id: int,
    db: Session = Depends(get_db),
    x_user_id: str | None = Header(None, alias="X-User-ID"),
):
    actor = _require_role(_require_actor(db, x_user_id), {ROLE_ADMIN})
    maintenance = _get_maintenance_or_404(db, maintenance_id)
    ledger.cancel_maintenance(db, maintenance, actor.UserID)
    held = maintenance.QuantityHeld
    log_audit(db, "Maintenance", maintenance_id, "Delete", f"released={held}", user_id=actor.UserID)
    db.commit()
    return {"message": "Maintenance record deleted successfully", "releasedQuantity": held}


@app.post("/api/maintenances/{maintenance_id}/logs", status_code=201)
def create_maintenance_log(
    maintenance_id: int,
    payload: MaintenanceLogRequest,
    db: Session = Depends(get_db),
    x_user_id: str | None = Header(None, alias="X-User-ID"),
):
    actor = _require_role(_require_actor(db, x_user_id), MAINTENANCE_ROLES)
    maintenance = _get_maintenance_or_404(db, maintenance_id)
    entry = add_maintenance_log(db, maintenance, actor.UserID, payload.content, payload.type)
    db.commit()
    db.refresh(entry)
    return serialize_maintenance_log(entry)


@app.get("/api/audit-logs")
def get_audit_logs(
    entity_type: str | None = Query(None, alias="entityType"),
    entity_id: int | None = Query(None, alias="entityID"),
    limit: int = Query(100, ge=1, le=1000),
    db: Session = Depends(get_db),
):
    stmt = select(AuditLog).order_by(AuditLog.AuditID.desc()).limit(limit)
    if entity_type:
        stmt = stmt.where(AuditLog.EntityType == entity_type)
    if entity_id:
        stmt = stmt.where(AuditLog.EntityID == entity_id)
    return [
        {
            "auditID": row.AuditID,
            "entityType": row.EntityType,
            "entityID": row.EntityID,
            "action": row.Action,
            "details": row.Details,
            "userID": row.UserID,
            "createdAt": row.CreatedAt,
        }
        for row in db.execute(stmt).scalars().all()
    ]
