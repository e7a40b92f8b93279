from datetime import date
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict


class CreateMaintenanceDto(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    equipmentID: int
    problemDescription: str
    technicianID: int
    priority: Literal["BASSE", "MOYENNE", "HAUTE"] = "MOYENNE"
    startDate: date
    expectedEndDate: Optional[date] = None


class UpdateMaintenanceDto(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    problemDescription: Optional[str] = None
    technicianID: Optional[int] = None
    priority: Optional[Literal["BASSE", "MOYENNE", "HAUTE"]] = None
    expectedEndDate: Optional[date] = None
    cost: Optional[float] = None
    status: Optional[Literal["EN_ATTENTE", "EN_COURS"]] = None


class CompleteMaintenanceRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    actualEndDate: Optional[date] = None
    cost: Optional[float] = None
    solutionDescription: Optional[str] = None


class MaintenanceLogRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    content: str
    type: Literal["COMMENT", "STATUS_CHANGE"] = "COMMENT"
