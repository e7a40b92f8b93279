from __future__ import annotations

from datetime import datetime

from sqlalchemy.orm import Session

from av_logistics.models.logistics_models import Maintenance, MaintenanceLog, User
from av_logistics.services.errors import NotFoundError, ValidationError


MAINTENANCE_LOG_TYPES = {"COMMENT", "STATUS_CHANGE"}


def require_technician(db: Session, technician_id: int) -> User:
    technician = db.get(User, technician_id)
    if not technician:
        raise NotFoundError("Technician not found")
    if not technician.IsActive:
        raise ValidationError("Technician account is not active")
    return technician


def add_maintenance_log(
    db: Session,
    maintenance: Maintenance,
    user_id: int,
    content: str,
    log_type: str = "COMMENT",
) -> MaintenanceLog:
    if log_type not in MAINTENANCE_LOG_TYPES:
        raise ValidationError(f"Invalid log type: {log_type}")
    if not (content or "").strip():
        raise ValidationError("Log content is required")
    entry = MaintenanceLog(
        MaintenanceID=maintenance.MaintenanceID,
        UserID=user_id,
        Content=content.strip(),
        Type=log_type,
        CreatedDate=datetime.now(),
    )
    db.add(entry)
    return entry


def serialize_maintenance_log(entry: MaintenanceLog) -> dict:
    return {
        "logID": entry.LogID,
        "maintenanceID": entry.MaintenanceID,
        "userID": entry.UserID,
        "content": entry.Content,
        "type": entry.Type,
        "createdDate": entry.CreatedDate,
    }


def serialize_maintenance(maintenance: Maintenance, include_logs: bool = False) -> dict:
    payload = {
        "maintenanceID": maintenance.MaintenanceID,
        "equipmentID": maintenance.EquipmentID,
        "problemDescription": maintenance.ProblemDescription,
        "technicianID": maintenance.TechnicianID,
        "priority": maintenance.Priority,
        "startDate": maintenance.StartDate,
        "expectedEndDate": maintenance.ExpectedEndDate,
        "actualEndDate": maintenance.ActualEndDate,
        "cost": maintenance.Cost,
        "status": maintenance.Status,
        "solutionDescription": maintenance.SolutionDescription,
        "quantityHeld": maintenance.QuantityHeld,
        "createdDate": maintenance.CreatedDate,
        "updatedDate": maintenance.UpdatedDate,
        "equipment": {
            "equipmentID": maintenance.Equipment.EquipmentID,
            "name": maintenance.Equipment.Name,
            "reference": maintenance.Equipment.Reference,
        } if maintenance.Equipment else None,
    }
    if include_logs:
        payload["logs"] = [serialize_maintenance_log(entry) for entry in maintenance.Logs]
    return payload
