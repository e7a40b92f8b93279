"""Equipment availability ledger.

Every change to ``Equipment.QuantityAvailable`` goes through this module. Each
operation locks the equipment row, checks the business rules, moves the
counter and appends one ``EquipmentStatus`` entry. Nothing here commits: the
caller owns the transaction and commits once the request is done.
"""

from __future__ import annotations

import logging
from datetime import date, datetime

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from av_logistics.models.logistics_models import (
    EQUIPMENT_STATUSES,
    MAINTENANCE_TERMINE,
    OPEN_MAINTENANCE_STATES,
    RESERVATION_LIVRE,
    RESERVATION_RESERVE,
    RESERVATION_RETOURNE,
    RESERVATION_STATUSES,
    STATUS_DISPONIBLE,
    STATUS_EN_LOCATION,
    STATUS_EN_MAINTENANCE,
    STATUS_MANQUANT,
    Equipment,
    EquipmentStatus,
    Event,
    EventEquipment,
    Maintenance,
)
from av_logistics.services.errors import ConflictError, NotFoundError, ValidationError


LEDGER_LOGGER = logging.getLogger("av_logistics.ledger")

MAINTENANCE_POLICY_PER_UNIT = "per_unit"
MAINTENANCE_POLICY_ALL_UNITS = "all_units"
MAINTENANCE_POLICIES = {MAINTENANCE_POLICY_PER_UNIT, MAINTENANCE_POLICY_ALL_UNITS}


def resolve_maintenance_policy(raw: str | None) -> str:
    policy = (raw or MAINTENANCE_POLICY_PER_UNIT).strip().lower()
    if policy not in MAINTENANCE_POLICIES:
        raise ValueError(
            f"Unknown maintenance policy {raw!r}; expected one of {sorted(MAINTENANCE_POLICIES)}"
        )
    return policy


def lock_equipment(db: Session, equipment_id: int) -> Equipment:
    """Load the equipment row with a write lock held until the transaction ends."""
    equipment = db.execute(
        select(Equipment)
        .where(Equipment.EquipmentID == equipment_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    ).scalars().first()
    if not equipment:
        raise NotFoundError("Equipment not found")
    return equipment


def record_status(
    db: Session,
    equipment: Equipment,
    status: str,
    quantity: int,
    changed_by: int,
    *,
    event_id: int | None = None,
    maintenance_id: int | None = None,
    notes: str | None = None,
) -> EquipmentStatus:
    entry = EquipmentStatus(
        EquipmentID=equipment.EquipmentID,
        Status=status,
        Quantity=quantity,
        RelatedEventID=event_id,
        RelatedMaintenanceID=maintenance_id,
        Notes=notes,
        ChangedBy=changed_by,
        ChangedAt=datetime.now(),
    )
    db.add(entry)
    return entry


def _take(equipment: Equipment, quantity: int) -> None:
    equipment.QuantityAvailable = max(0, equipment.QuantityAvailable - quantity)
    equipment.UpdatedDate = datetime.now()


def _release(equipment: Equipment, quantity: int) -> None:
    equipment.QuantityAvailable = min(equipment.QuantityTotal, equipment.QuantityAvailable + quantity)
    equipment.UpdatedDate = datetime.now()


def has_open_maintenance(db: Session, equipment_id: int) -> bool:
    open_count = db.execute(
        select(func.count(Maintenance.MaintenanceID))
        .where(Maintenance.EquipmentID == equipment_id)
        .where(Maintenance.Status.in_(OPEN_MAINTENANCE_STATES))
    ).scalar()
    return bool(open_count)


def is_under_maintenance(db: Session, equipment: Equipment) -> bool:
    """True while an open ticket or an unreversed manual EN_MAINTENANCE holds units."""
    if int(equipment.QuantityManualMaintenance or 0) > 0:
        return True
    return has_open_maintenance(db, equipment.EquipmentID)


def _reload_reservation(db: Session, reservation_id: int) -> EventEquipment | None:
    return db.execute(
        select(EventEquipment)
        .where(EventEquipment.ReservationID == reservation_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    ).scalars().first()


def lock_reservation(db: Session, event_id: int, reservation_id: int) -> tuple[Equipment, EventEquipment]:
    """Lock the equipment row, then re-read the reservation under that lock.

    The first lookup only tells us which equipment row to lock. Quantities are
    validated against the second read so a concurrent return or removal that
    committed in the meantime is seen.
    """
    reservation = get_reservation(db, event_id, reservation_id)
    equipment = lock_equipment(db, reservation.EquipmentID)
    reservation = _reload_reservation(db, reservation_id)
    if not reservation:
        raise NotFoundError("Reservation not found")
    return equipment, reservation


def lock_maintenance(db: Session, maintenance: Maintenance) -> tuple[Equipment, Maintenance]:
    equipment = lock_equipment(db, maintenance.EquipmentID)
    current = db.execute(
        select(Maintenance)
        .where(Maintenance.MaintenanceID == maintenance.MaintenanceID)
        .with_for_update()
        .execution_options(populate_existing=True)
    ).scalars().first()
    if not current:
        raise NotFoundError("Maintenance record not found")
    return equipment, current


# Equipment stock


def initialize_stock(db: Session, equipment: Equipment, changed_by: int) -> EquipmentStatus:
    total = int(equipment.QuantityTotal or 0)
    if total < 0:
        raise ValidationError("Quantity total must be non-negative")
    equipment.QuantityTotal = total
    equipment.QuantityAvailable = total
    db.flush()
    LEDGER_LOGGER.info("Stock initialized equipment_id=%s total=%s", equipment.EquipmentID, total)
    return record_status(
        db,
        equipment,
        STATUS_DISPONIBLE if total > 0 else STATUS_MANQUANT,
        total,
        changed_by,
        notes="Initial equipment creation",
    )


def resize_stock(db: Session, equipment_id: int, new_total: int, changed_by: int) -> Equipment:
    equipment = lock_equipment(db, equipment_id)
    if new_total < 0:
        raise ValidationError("Quantity total must be non-negative")

    outstanding = equipment.QuantityTotal - equipment.QuantityAvailable
    if new_total < outstanding:
        raise ValidationError(
            f"Cannot set total to {new_total}: {outstanding} units are currently out (rented or in maintenance)."
        )

    delta = new_total - equipment.QuantityTotal
    if delta == 0:
        return equipment

    equipment.QuantityTotal = new_total
    equipment.QuantityAvailable = new_total - outstanding
    equipment.UpdatedDate = datetime.now()
    if delta > 0:
        record_status(db, equipment, STATUS_DISPONIBLE, delta, changed_by, notes=f"Stock increased by {delta}")
    else:
        record_status(db, equipment, STATUS_MANQUANT, -delta, changed_by, notes=f"Stock reduced by {-delta}")
    db.flush()
    LEDGER_LOGGER.info(
        "Stock resized equipment_id=%s total=%s available=%s",
        equipment.EquipmentID,
        equipment.QuantityTotal,
        equipment.QuantityAvailable,
    )
    return equipment


def ensure_removable(db: Session, equipment_id: int) -> Equipment:
    equipment = lock_equipment(db, equipment_id)
    if equipment.QuantityAvailable < equipment.QuantityTotal or has_open_maintenance(db, equipment_id):
        raise ValidationError(
            "Cannot delete equipment. It is currently in use (rented or under maintenance)."
        )
    reservation_count = db.execute(
        select(func.count(EventEquipment.ReservationID)).where(EventEquipment.EquipmentID == equipment_id)
    ).scalar()
    maintenance_count = db.execute(
        select(func.count(Maintenance.MaintenanceID)).where(Maintenance.EquipmentID == equipment_id)
    ).scalar()
    if reservation_count or maintenance_count:
        raise ValidationError(
            "Cannot delete equipment. It is referenced by event reservations or maintenance records."
        )
    return equipment


# Reservations


def reserve(
    db: Session,
    event: Event,
    equipment_id: int,
    quantity: int,
    changed_by: int,
    notes: str | None = None,
) -> EventEquipment:
    equipment = lock_equipment(db, equipment_id)

    if quantity < 1:
        raise ValidationError("Quantity reserved must be at least 1")
    if is_under_maintenance(db, equipment):
        raise ValidationError(
            f'Equipment "{equipment.Name}" is currently under maintenance and cannot be reserved.'
        )
    if quantity > equipment.QuantityAvailable:
        raise ValidationError(
            f"Insufficient quantity available. Requested: {quantity}, Available: {equipment.QuantityAvailable}"
        )

    existing = db.execute(
        select(EventEquipment)
        .where(EventEquipment.EventID == event.EventID)
        .where(EventEquipment.EquipmentID == equipment_id)
    ).scalars().first()
    if existing:
        raise ConflictError(
            "Equipment is already reserved for this event. Use update endpoint to modify quantity."
        )

    reservation = EventEquipment(
        EventID=event.EventID,
        EquipmentID=equipment_id,
        QuantityReserved=quantity,
        QuantityReturned=0,
        Status=RESERVATION_RESERVE,
        Notes=notes,
        CreatedDate=datetime.now(),
        UpdatedDate=datetime.now(),
    )
    db.add(reservation)
    _take(equipment, quantity)
    record_status(
        db,
        equipment,
        STATUS_EN_LOCATION,
        quantity,
        changed_by,
        event_id=event.EventID,
        notes=f"Reserved for event: {event.EventName}",
    )
    db.flush()
    LEDGER_LOGGER.info(
        "Reserved equipment_id=%s event_id=%s quantity=%s available=%s",
        equipment_id,
        event.EventID,
        quantity,
        equipment.QuantityAvailable,
    )
    return reservation


def get_reservation(db: Session, event_id: int, reservation_id: int) -> EventEquipment:
    reservation = db.execute(
        select(EventEquipment)
        .where(EventEquipment.ReservationID == reservation_id)
        .where(EventEquipment.EventID == event_id)
    ).scalars().first()
    if not reservation:
        raise NotFoundError("Reservation not found")
    return reservation


def _log_release(
    db: Session,
    equipment: Equipment,
    reservation: EventEquipment,
    quantity: int,
    changed_by: int,
    notes: str,
) -> None:
    outstanding = reservation.QuantityReserved - reservation.QuantityReturned
    record_status(
        db,
        equipment,
        STATUS_DISPONIBLE if outstanding == 0 else STATUS_EN_LOCATION,
        quantity,
        changed_by,
        event_id=reservation.EventID,
        notes=notes,
    )


def modify_reservation(
    db: Session,
    event_id: int,
    reservation_id: int,
    changed_by: int,
    *,
    quantity_reserved: int | None = None,
    quantity_returned: int | None = None,
    status: str | None = None,
    notes: str | None = None,
) -> EventEquipment:
    equipment, reservation = lock_reservation(db, event_id, reservation_id)

    new_reserved = reservation.QuantityReserved if quantity_reserved is None else quantity_reserved
    new_returned = reservation.QuantityReturned if quantity_returned is None else quantity_returned

    if new_reserved < 1:
        raise ValidationError("Quantity reserved must be at least 1")
    if new_returned < 0:
        raise ValidationError("Quantity returned must be non-negative")
    if quantity_reserved is not None and new_reserved < new_returned:
        raise ValidationError("Quantity reserved cannot be less than quantity returned")
    if new_returned > new_reserved:
        raise ValidationError("Quantity returned cannot exceed quantity reserved")
    if status is not None and status not in RESERVATION_STATUSES:
        raise ValidationError(f"Invalid reservation status: {status}")
    if status == RESERVATION_RETOURNE and new_returned < new_reserved:
        raise ValidationError("Reservation cannot be marked returned while items are still out")

    outstanding_before = reservation.QuantityReserved - reservation.QuantityReturned
    outstanding_after = new_reserved - new_returned
    delta = outstanding_after - outstanding_before
    if delta > 0 and equipment.QuantityAvailable - delta < 0:
        raise ValidationError(
            f"Insufficient quantity available. Cannot increase reservation by {delta}"
        )

    reservation.QuantityReserved = new_reserved
    reservation.QuantityReturned = new_returned
    if delta > 0:
        _take(equipment, delta)
        record_status(
            db,
            equipment,
            STATUS_EN_LOCATION,
            delta,
            changed_by,
            event_id=event_id,
            notes=f"Reservation increased by {delta}",
        )
    elif delta < 0:
        _release(equipment, -delta)
        _log_release(db, equipment, reservation, -delta, changed_by, f"Reservation released {-delta} items")

    if new_returned == new_reserved:
        reservation.Status = RESERVATION_RETOURNE
    elif status is not None:
        reservation.Status = status
    elif reservation.Status == RESERVATION_RETOURNE:
        reservation.Status = RESERVATION_LIVRE if new_returned > 0 else RESERVATION_RESERVE

    if notes is not None:
        reservation.Notes = notes
    reservation.UpdatedDate = datetime.now()
    db.flush()
    LEDGER_LOGGER.info(
        "Reservation updated reservation_id=%s reserved=%s returned=%s available=%s",
        reservation.ReservationID,
        new_reserved,
        new_returned,
        equipment.QuantityAvailable,
    )
    return reservation


def return_reservation(
    db: Session,
    event_id: int,
    reservation_id: int,
    quantity: int,
    changed_by: int,
    notes: str | None = None,
) -> EventEquipment:
    equipment, reservation = lock_reservation(db, event_id, reservation_id)

    remaining = reservation.QuantityReserved - reservation.QuantityReturned
    if quantity < 1:
        raise ValidationError("Quantity returned must be at least 1")
    if quantity > remaining:
        raise ValidationError(
            f"Cannot return {quantity} items. Only {remaining} items can be returned."
        )

    reservation.QuantityReturned += quantity
    if reservation.QuantityReturned == reservation.QuantityReserved:
        reservation.Status = RESERVATION_RETOURNE
    reservation.Notes = notes or reservation.Notes
    reservation.UpdatedDate = datetime.now()

    _release(equipment, quantity)
    _log_release(db, equipment, reservation, quantity, changed_by, f"Returned {quantity} items from event")
    db.flush()
    LEDGER_LOGGER.info(
        "Returned equipment_id=%s event_id=%s quantity=%s available=%s",
        equipment.EquipmentID,
        event_id,
        quantity,
        equipment.QuantityAvailable,
    )
    return reservation


def _drop_reservation(
    db: Session,
    equipment: Equipment,
    reservation: EventEquipment,
    changed_by: int,
    notes: str,
) -> int:
    outstanding = reservation.QuantityReserved - reservation.QuantityReturned
    _release(equipment, outstanding)
    record_status(
        db,
        equipment,
        STATUS_DISPONIBLE,
        outstanding,
        changed_by,
        event_id=reservation.EventID,
        notes=notes,
    )
    db.delete(reservation)
    db.flush()
    LEDGER_LOGGER.info(
        "Reservation removed reservation_id=%s released=%s available=%s",
        reservation.ReservationID,
        outstanding,
        equipment.QuantityAvailable,
    )
    return outstanding


def remove_reservation(db: Session, event_id: int, reservation_id: int, changed_by: int) -> int:
    equipment, reservation = lock_reservation(db, event_id, reservation_id)
    return _drop_reservation(db, equipment, reservation, changed_by, "Equipment removed from event")


def release_event(db: Session, event: Event, changed_by: int) -> int:
    rows = db.execute(
        select(EventEquipment.ReservationID, EventEquipment.EquipmentID)
        .where(EventEquipment.EventID == event.EventID)
        .order_by(EventEquipment.EquipmentID)
    ).all()
    released = 0
    for reservation_id, equipment_id in rows:
        equipment = lock_equipment(db, equipment_id)
        reservation = _reload_reservation(db, reservation_id)
        if not reservation:
            continue
        released += _drop_reservation(db, equipment, reservation, changed_by, f"Event deleted: {event.EventName}")
    return released


# Maintenance


def open_maintenance(db: Session, maintenance: Maintenance, changed_by: int, policy: str) -> Maintenance:
    """Take units out of the pool for a new ticket.

    ``per_unit`` holds a single unit, ``all_units`` holds everything that is
    currently available. The held amount is stored on the ticket so that
    completion gives back exactly what was taken.
    """
    equipment = lock_equipment(db, maintenance.EquipmentID)
    if equipment.QuantityAvailable < 1:
        raise ValidationError("No available equipment to send to maintenance")

    if policy == MAINTENANCE_POLICY_ALL_UNITS:
        held = equipment.QuantityAvailable
    else:
        held = 1

    maintenance.QuantityHeld = held
    db.add(maintenance)
    db.flush()

    _take(equipment, held)
    record_status(
        db,
        equipment,
        STATUS_EN_MAINTENANCE,
        held,
        changed_by,
        maintenance_id=maintenance.MaintenanceID,
        notes=f"Equipment sent for maintenance: {maintenance.ProblemDescription}",
    )
    db.flush()
    LEDGER_LOGGER.info(
        "Maintenance opened maintenance_id=%s equipment_id=%s held=%s policy=%s available=%s",
        maintenance.MaintenanceID,
        equipment.EquipmentID,
        held,
        policy,
        equipment.QuantityAvailable,
    )
    return maintenance


def _release_maintenance(
    db: Session,
    equipment: Equipment,
    maintenance: Maintenance,
    changed_by: int,
    notes: str,
) -> None:
    held = int(maintenance.QuantityHeld or 0)
    _release(equipment, held)
    record_status(
        db,
        equipment,
        STATUS_DISPONIBLE,
        held,
        changed_by,
        maintenance_id=maintenance.MaintenanceID,
        notes=notes,
    )


def complete_maintenance(
    db: Session,
    maintenance: Maintenance,
    changed_by: int,
    *,
    actual_end_date: date | None = None,
    cost: float | None = None,
    solution_description: str | None = None,
) -> Maintenance:
    equipment, maintenance = lock_maintenance(db, maintenance)
    if maintenance.Status == MAINTENANCE_TERMINE:
        raise ValidationError("Maintenance is already completed")

    maintenance.Status = MAINTENANCE_TERMINE
    maintenance.ActualEndDate = actual_end_date or date.today()
    if cost is not None:
        maintenance.Cost = cost
    maintenance.SolutionDescription = solution_description
    maintenance.UpdatedDate = datetime.now()

    _release_maintenance(
        db, equipment, maintenance, changed_by, f"Maintenance completed: {solution_description or ''}".strip()
    )
    db.flush()
    LEDGER_LOGGER.info(
        "Maintenance completed maintenance_id=%s released=%s available=%s",
        maintenance.MaintenanceID,
        maintenance.QuantityHeld,
        equipment.QuantityAvailable,
    )
    return maintenance


def cancel_maintenance(db: Session, maintenance: Maintenance, changed_by: int) -> None:
    equipment, maintenance = lock_maintenance(db, maintenance)
    if maintenance.Status == MAINTENANCE_TERMINE:
        raise ValidationError("Cannot delete completed maintenance record")
    _release_maintenance(db, equipment, maintenance, changed_by, "Maintenance record deleted")
    db.delete(maintenance)
    db.flush()
    LEDGER_LOGGER.info(
        "Maintenance cancelled maintenance_id=%s released=%s available=%s",
        maintenance.MaintenanceID,
        maintenance.QuantityHeld,
        equipment.QuantityAvailable,
    )


# Direct status override


def apply_status_override(
    db: Session,
    equipment_id: int,
    status: str,
    quantity: int,
    changed_by: int,
    *,
    event_id: int | None = None,
    maintenance_id: int | None = None,
    notes: str | None = None,
) -> EquipmentStatus:
    equipment = lock_equipment(db, equipment_id)

    if status not in EQUIPMENT_STATUSES:
        raise ValidationError(f"Invalid equipment status: {status}")
    if quantity < 0:
        raise ValidationError("Quantity must be non-negative")
    if status == STATUS_EN_LOCATION and quantity > equipment.QuantityAvailable:
        raise ValidationError(
            f"Cannot reserve {quantity} items. Only {equipment.QuantityAvailable} available."
        )

    entry = record_status(
        db,
        equipment,
        status,
        quantity,
        changed_by,
        event_id=event_id,
        maintenance_id=maintenance_id,
        notes=notes,
    )
    before = equipment.QuantityAvailable
    manual_held = int(equipment.QuantityManualMaintenance or 0)
    if status == STATUS_EN_LOCATION:
        _take(equipment, quantity)
    elif status == STATUS_EN_MAINTENANCE:
        _take(equipment, quantity)
        equipment.QuantityManualMaintenance = manual_held + (before - equipment.QuantityAvailable)
    elif status == STATUS_DISPONIBLE:
        _release(equipment, quantity)
        # Units coming back clear a manual maintenance hold first.
        restored = equipment.QuantityAvailable - before
        equipment.QuantityManualMaintenance = manual_held - min(manual_held, restored)
    db.flush()
    LEDGER_LOGGER.info(
        "Status override equipment_id=%s status=%s quantity=%s available=%s user_id=%s",
        equipment_id,
        status,
        quantity,
        equipment.QuantityAvailable,
        changed_by,
    )
    return entry


# Reconciliation


def reconcile(db: Session, equipment: Equipment) -> dict:
    outstanding = db.execute(
        select(func.coalesce(func.sum(EventEquipment.QuantityReserved - EventEquipment.QuantityReturned), 0))
        .where(EventEquipment.EquipmentID == equipment.EquipmentID)
    ).scalar()
    in_maintenance = db.execute(
        select(func.coalesce(func.sum(Maintenance.QuantityHeld), 0))
        .where(Maintenance.EquipmentID == equipment.EquipmentID)
        .where(Maintenance.Status.in_(OPEN_MAINTENANCE_STATES))
    ).scalar()
    manual_held = int(equipment.QuantityManualMaintenance or 0)
    expected = int(equipment.QuantityTotal) - int(outstanding or 0) - int(in_maintenance or 0) - manual_held
    return {
        "equipmentID": equipment.EquipmentID,
        "quantityTotal": equipment.QuantityTotal,
        "quantityAvailable": equipment.QuantityAvailable,
        "quantityOutstanding": int(outstanding or 0),
        "quantityInMaintenance": int(in_maintenance or 0),
        "quantityManualMaintenance": manual_held,
        "expectedAvailable": expected,
        "isConsistent": expected == equipment.QuantityAvailable,
    }
