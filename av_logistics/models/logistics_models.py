from sqlalchemy import Boolean, CheckConstraint, Column, Date, DateTime, ForeignKey, Integer, Numeric, String, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from av_logistics.db.base import Base


STATUS_DISPONIBLE = "DISPONIBLE"
STATUS_EN_LOCATION = "EN_LOCATION"
STATUS_EN_MAINTENANCE = "EN_MAINTENANCE"
STATUS_MANQUANT = "MANQUANT"
EQUIPMENT_STATUSES = {STATUS_DISPONIBLE, STATUS_EN_LOCATION, STATUS_EN_MAINTENANCE, STATUS_MANQUANT}

RESERVATION_RESERVE = "RESERVE"
RESERVATION_LIVRE = "LIVRE"
RESERVATION_RETOURNE = "RETOURNE"
RESERVATION_STATUSES = {RESERVATION_RESERVE, RESERVATION_LIVRE, RESERVATION_RETOURNE}

MAINTENANCE_EN_ATTENTE = "EN_ATTENTE"
MAINTENANCE_EN_COURS = "EN_COURS"
MAINTENANCE_TERMINE = "TERMINE"
OPEN_MAINTENANCE_STATES = {MAINTENANCE_EN_ATTENTE, MAINTENANCE_EN_COURS}


class User(Base):
    __tablename__ = "Users"

    UserID = Column(Integer, primary_key=True)
    FullName = Column(String(255), nullable=False)
    Email = Column(String(255), nullable=False, unique=True)
    Phone = Column(String(50))
    Role = Column(String(20), nullable=False, default="TECHNICIEN")
    IsActive = Column(Boolean, default=True)
    CreatedDate = Column(DateTime, server_default=func.now())


class Equipment(Base):
    __tablename__ = "Equipment"
    __table_args__ = (
        CheckConstraint("QuantityTotal >= 0", name="ck_equipment_total_non_negative"),
        CheckConstraint(
            "QuantityAvailable >= 0 AND QuantityAvailable <= QuantityTotal",
            name="ck_equipment_available_bounds",
        ),
    )

    EquipmentID = Column(Integer, primary_key=True)
    Name = Column(String(255), nullable=False)
    Reference = Column(String(100), nullable=False, unique=True)
    CategoryName = Column(String(100), nullable=False)
    Brand = Column(String(100))
    Model = Column(String(100))
    Description = Column(String)
    TechnicalSpecs = Column(String)
    QuantityTotal = Column(Integer, nullable=False, default=0)
    QuantityAvailable = Column(Integer, nullable=False, default=0)
    # Units taken by EN_MAINTENANCE overrides that no DISPONIBLE override has given back yet.
    QuantityManualMaintenance = Column(Integer, nullable=False, default=0)
    PurchasePrice = Column(Numeric(10, 2))
    DailyRentalPrice = Column(Numeric(10, 2))
    PurchaseDate = Column(Date)
    WarrantyEndDate = Column(Date)
    Supplier = Column(String(255))
    WeightKg = Column(Numeric(8, 2))
    CreatedDate = Column(DateTime, server_default=func.now())
    UpdatedDate = Column(DateTime, server_default=func.now())

    Reservations = relationship("EventEquipment", back_populates="Equipment")
    Maintenances = relationship("Maintenance", back_populates="Equipment")


class EquipmentStatus(Base):
    __tablename__ = "EquipmentStatus"

    StatusID = Column(Integer, primary_key=True)
    EquipmentID = Column(Integer, nullable=False, index=True)
    Status = Column(String(20), nullable=False, index=True)
    Quantity = Column(Integer, nullable=False, default=0)
    # Plain ids: the log outlives the equipment, events and tickets it points at.
    RelatedEventID = Column(Integer, index=True)
    RelatedMaintenanceID = Column(Integer)
    Notes = Column(String(1000))
    ChangedBy = Column(Integer, nullable=False)
    ChangedAt = Column(DateTime, server_default=func.now())


class Event(Base):
    __tablename__ = "Events"

    EventID = Column(Integer, primary_key=True)
    EventName = Column(String(255), nullable=False)
    ClientName = Column(String(255), nullable=False)
    ContactPerson = Column(String(255))
    Phone = Column(String(50))
    Email = Column(String(255))
    Address = Column(String(500))
    InstallationDate = Column(Date, nullable=False)
    EventDate = Column(Date, nullable=False)
    DismantlingDate = Column(Date, nullable=False)
    Category = Column(String(20), nullable=False, default="MIXTE")
    Status = Column(String(20), nullable=False, default="PLANIFIE")
    Notes = Column(String(2000))
    Budget = Column(Numeric(12, 2))
    ParticipantCount = Column(Integer)
    EventType = Column(String(100))
    CreatedBy = Column(Integer, nullable=False)
    CreatedDate = Column(DateTime, server_default=func.now())
    UpdatedDate = Column(DateTime, server_default=func.now())

    Reservations = relationship("EventEquipment", back_populates="Event")


class EventEquipment(Base):
    __tablename__ = "EventEquipment"
    __table_args__ = (
        UniqueConstraint("EventID", "EquipmentID", name="uq_event_equipment"),
        CheckConstraint(
            "QuantityReturned >= 0 AND QuantityReturned <= QuantityReserved",
            name="ck_event_equipment_returned_bounds",
        ),
    )

    ReservationID = Column(Integer, primary_key=True)
    EventID = Column(Integer, ForeignKey("Events.EventID"), nullable=False, index=True)
    EquipmentID = Column(Integer, ForeignKey("Equipment.EquipmentID"), nullable=False, index=True)
    QuantityReserved = Column(Integer, nullable=False)
    QuantityReturned = Column(Integer, nullable=False, default=0)
    Status = Column(String(20), nullable=False, default=RESERVATION_RESERVE)
    Notes = Column(String(1000))
    CreatedDate = Column(DateTime, server_default=func.now())
    UpdatedDate = Column(DateTime, server_default=func.now())

    Event = relationship("Event", back_populates="Reservations")
    Equipment = relationship("Equipment", back_populates="Reservations")


class Maintenance(Base):
    __tablename__ = "Maintenances"

    MaintenanceID = Column(Integer, primary_key=True)
    EquipmentID = Column(Integer, ForeignKey("Equipment.EquipmentID"), nullable=False, index=True)
    ProblemDescription = Column(String(2000), nullable=False)
    TechnicianID = Column(Integer, ForeignKey("Users.UserID"), nullable=False)
    Priority = Column(String(20), nullable=False, default="MOYENNE")
    StartDate = Column(Date, nullable=False)
    ExpectedEndDate = Column(Date)
    ActualEndDate = Column(Date)
    Cost = Column(Numeric(10, 2))
    Status = Column(String(20), nullable=False, default=MAINTENANCE_EN_ATTENTE, index=True)
    SolutionDescription = Column(String(2000))
    QuantityHeld = Column(Integer, nullable=False, default=0)
    CreatedDate = Column(DateTime, server_default=func.now())
    UpdatedDate = Column(DateTime, server_default=func.now())

    Equipment = relationship("Equipment", back_populates="Maintenances")
    Technician = relationship("User")
    Logs = relationship(
        "MaintenanceLog",
        back_populates="Maintenance",
        cascade="all, delete-orphan",
        order_by="MaintenanceLog.LogID",
    )


class MaintenanceLog(Base):
    __tablename__ = "MaintenanceLogs"

    LogID = Column(Integer, primary_key=True)
    MaintenanceID = Column(Integer, ForeignKey("Maintenances.MaintenanceID"), nullable=False, index=True)
    UserID = Column(Integer, nullable=False)
    Content = Column(String(2000), nullable=False)
    Type = Column(String(20), nullable=False, default="COMMENT")
    CreatedDate = Column(DateTime, server_default=func.now())

    Maintenance = relationship("Maintenance", back_populates="Logs")


class AuditLog(Base):
    __tablename__ = "AuditLogs"

    AuditID = Column(Integer, primary_key=True)
    EntityType = Column(String(50), nullable=False)
    EntityID = Column(Integer, nullable=False)
    Action = Column(String(100), nullable=False)
    Details = Column(String(2000))
    UserID = Column(Integer)
    CreatedAt = Column(DateTime, server_default=func.now())
