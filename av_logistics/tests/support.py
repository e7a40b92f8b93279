import os
from datetime import date

os.environ.setdefault("AV_LOGISTICS_DB_URL", "sqlite+pysqlite:///:memory:")

from sqlalchemy import create_engine, select
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from av_logistics.db.base import Base
from av_logistics.models.logistics_models import Equipment, EquipmentStatus, Event, Maintenance, User
from av_logistics.services.ledger_service import initialize_stock


def make_session_factory(db_url=None):
    if db_url:
        engine = create_engine(db_url, connect_args={"check_same_thread": False}, future=True)
    else:
        engine = create_engine(
            "sqlite+pysqlite:///:memory:",
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
            future=True,
        )
    Base.metadata.create_all(engine)
    factory = sessionmaker(
        bind=engine,
        autoflush=False,
        autocommit=False,
        expire_on_commit=False,
        future=True,
    )
    return engine, factory


def add_user(db, role="ADMIN", email=None, is_active=True) -> User:
    user = User(
        FullName=f"{role.title()} User",
        Email=email or f"{role.lower()}@example.test",
        Role=role,
        IsActive=is_active,
    )
    db.add(user)
    db.flush()
    return user


def add_equipment(db, total, user_id, name="Console", reference=None) -> Equipment:
    count = db.execute(select(Equipment.EquipmentID)).scalars().all()
    equipment = Equipment(
        Name=name,
        Reference=reference or f"EQ-TEST-{len(count) + 1:03d}",
        CategoryName="Test",
        QuantityTotal=total,
    )
    db.add(equipment)
    initialize_stock(db, equipment, user_id)
    db.commit()
    return equipment


def add_event(db, user_id, name="Gala") -> Event:
    event = Event(
        EventName=name,
        ClientName="Client",
        InstallationDate=date(2026, 3, 1),
        EventDate=date(2026, 3, 2),
        DismantlingDate=date(2026, 3, 3),
        Category="MIXTE",
        Status="PLANIFIE",
        CreatedBy=user_id,
    )
    db.add(event)
    db.flush()
    return event


def new_ticket(equipment, technician_id, description="Broken connector") -> Maintenance:
    return Maintenance(
        EquipmentID=equipment.EquipmentID,
        ProblemDescription=description,
        TechnicianID=technician_id,
        Priority="MOYENNE",
        StartDate=date(2026, 3, 1),
        Status="EN_ATTENTE",
    )


def status_history(db, equipment_id):
    rows = db.execute(
        select(EquipmentStatus)
        .where(EquipmentStatus.EquipmentID == equipment_id)
        .order_by(EquipmentStatus.StatusID)
    ).scalars().all()
    return [(row.Status, row.Quantity) for row in rows]
