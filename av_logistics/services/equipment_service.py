from __future__ import annotations

from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from av_logistics.models.logistics_models import Equipment, EquipmentStatus


def _category_code(category_name: str) -> str:
    code = "".join((category_name or "").split())[:4].upper()
    return code or "GEN"


def _parse_seq(reference: str) -> Optional[int]:
    parts = reference.rsplit("-", 1)
    if len(parts) != 2:
        return None
    try:
        return int(parts[1])
    except ValueError:
        return None


def generate_equipment_reference(db: Session, category_name: str) -> str:
    prefix = f"EQ-{_category_code(category_name)}-"
    existing = db.execute(
        select(Equipment.Reference).where(Equipment.Reference.startswith(prefix))
    ).scalars().all()

    max_seq = 0
    for reference in existing:
        if not reference:
            continue
        seq = _parse_seq(reference)
        if seq and seq > max_seq:
            max_seq = seq

    return f"{prefix}{max_seq + 1:03d}"


def serialize_equipment(equipment: Equipment) -> dict:
    return {
        "equipmentID": equipment.EquipmentID,
        "name": equipment.Name,
        "reference": equipment.Reference,
        "categoryName": equipment.CategoryName,
        "brand": equipment.Brand,
        "model": equipment.Model,
        "description": equipment.Description,
        "technicalSpecs": equipment.TechnicalSpecs,
        "quantityTotal": equipment.QuantityTotal,
        "quantityAvailable": equipment.QuantityAvailable,
        "quantityManualMaintenance": equipment.QuantityManualMaintenance,
        "purchasePrice": equipment.PurchasePrice,
        "dailyRentalPrice": equipment.DailyRentalPrice,
        "purchaseDate": equipment.PurchaseDate,
        "warrantyEndDate": equipment.WarrantyEndDate,
        "supplier": equipment.Supplier,
        "weightKg": equipment.WeightKg,
        "createdDate": equipment.CreatedDate,
        "updatedDate": equipment.UpdatedDate,
    }


def serialize_status(entry: EquipmentStatus) -> dict:
    return {
        "statusID": entry.StatusID,
        "equipmentID": entry.EquipmentID,
        "status": entry.Status,
        "quantity": entry.Quantity,
        "relatedEventID": entry.RelatedEventID,
        "relatedMaintenanceID": entry.RelatedMaintenanceID,
        "notes": entry.Notes,
        "changedBy": entry.ChangedBy,
        "changedAt": entry.ChangedAt,
    }
