from datetime import date
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict


class CreateEventDto(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    eventName: str
    clientName: str
    contactPerson: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    address: Optional[str] = None
    installationDate: date
    eventDate: date
    dismantlingDate: date
    category: Literal["SON", "VIDEO", "LUMIERE", "MIXTE"] = "MIXTE"
    status: Literal["PLANIFIE", "EN_COURS", "TERMINE", "ANNULE"] = "PLANIFIE"
    notes: Optional[str] = None
    budget: Optional[float] = None
    participantCount: Optional[int] = None
    eventType: Optional[str] = None


class UpdateEventDto(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    eventName: Optional[str] = None
    clientName: Optional[str] = None
    contactPerson: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    address: Optional[str] = None
    installationDate: Optional[date] = None
    eventDate: Optional[date] = None
    dismantlingDate: Optional[date] = None
    category: Optional[Literal["SON", "VIDEO", "LUMIERE", "MIXTE"]] = None
    status: Optional[Literal["PLANIFIE", "EN_COURS", "TERMINE", "ANNULE"]] = None
    notes: Optional[str] = None
    budget: Optional[float] = None
    participantCount: Optional[int] = None
    eventType: Optional[str] = None


class ReserveEquipmentRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    equipmentID: int
    quantityReserved: int
    notes: Optional[str] = None


class UpdateReservationRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    quantityReserved: Optional[int] = None
    quantityReturned: Optional[int] = None
    status: Optional[Literal["RESERVE", "LIVRE", "RETOURNE"]] = None
    notes: Optional[str] = None


class ReturnEquipmentRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    quantityReturned: int
    notes: Optional[str] = None
