from __future__ import annotations

from datetime import date

from av_logistics.models.logistics_models import Event, EventEquipment
from av_logistics.services.errors import ValidationError


def validate_event_dates(installation_date: date, event_date: date, dismantling_date: date) -> None:
    if installation_date > event_date:
        raise ValidationError("Installation date must be before or on event date")
    if event_date > dismantling_date:
        raise ValidationError("Event date must be before or on dismantling date")


def serialize_reservation(reservation: EventEquipment) -> dict:
    return {
        "reservationID": reservation.ReservationID,
        "eventID": reservation.EventID,
        "equipmentID": reservation.EquipmentID,
        "quantityReserved": reservation.QuantityReserved,
        "quantityReturned": reservation.QuantityReturned,
        "quantityOutstanding": reservation.QuantityReserved - reservation.QuantityReturned,
        "status": reservation.Status,
        "notes": reservation.Notes,
        "createdDate": reservation.CreatedDate,
        "updatedDate": reservation.UpdatedDate,
        "equipment": {
            "equipmentID": reservation.Equipment.EquipmentID,
            "name": reservation.Equipment.Name,
            "reference": reservation.Equipment.Reference,
            "quantityAvailable": reservation.Equipment.QuantityAvailable,
        } if reservation.Equipment else None,
    }


def serialize_event(event: Event, include_reservations: bool = False) -> dict:
    payload = {
        "eventID": event.EventID,
        "eventName": event.EventName,
        "clientName": event.ClientName,
        "contactPerson": event.ContactPerson,
        "phone": event.Phone,
        "email": event.Email,
        "address": event.Address,
        "installationDate": event.InstallationDate,
        "eventDate": event.EventDate,
        "dismantlingDate": event.DismantlingDate,
        "category": event.Category,
        "status": event.Status,
        "notes": event.Notes,
        "budget": event.Budget,
        "participantCount": event.ParticipantCount,
        "eventType": event.EventType,
        "createdBy": event.CreatedBy,
        "createdDate": event.CreatedDate,
        "updatedDate": event.UpdatedDate,
    }
    if include_reservations:
        payload["equipmentReservations"] = [serialize_reservation(item) for item in event.Reservations]
    return payload
