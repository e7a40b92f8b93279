from datetime import date
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class EquipmentUpsert(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    name: Optional[str] = None
    categoryName: Optional[str] = None
    brand: Optional[str] = None
    model: Optional[str] = None
    description: Optional[str] = None
    technicalSpecs: Optional[str] = None
    quantityTotal: Optional[int] = Field(default=None, ge=0)
    purchasePrice: Optional[float] = None
    dailyRentalPrice: Optional[float] = None
    purchaseDate: Optional[date] = None
    warrantyEndDate: Optional[date] = None
    supplier: Optional[str] = None
    weightKg: Optional[float] = None


class EquipmentStatusRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    status: Literal["DISPONIBLE", "EN_LOCATION", "EN_MAINTENANCE", "MANQUANT"]
    quantity: int
    relatedEventID: Optional[int] = None
    relatedMaintenanceID: Optional[int] = None
    notes: Optional[str] = None
