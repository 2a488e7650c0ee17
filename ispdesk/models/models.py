import uuid
from datetime import datetime, date
from typing import Optional

from sqlalchemy import (
    String,
    DateTime,
    Date,
    Boolean,
    ForeignKey,
    Integer,
    Float,
    JSON,
    UniqueConstraint,
    Text,
    Uuid,
)
from sqlalchemy.orm import relationship, Mapped, mapped_column

from ..db import Base
from ..services.time_rules import utcnow


def uuid_pk() -> Mapped[uuid.UUID]:
    return mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)


class User(Base):
    __tablename__ = "users"

    id: Mapped[uuid.UUID] = uuid_pk()
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)  # always lower-cased
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    image: Mapped[Optional[str]] = mapped_column(String(1024))
    role: Mapped[str] = mapped_column(String(20), default="user", nullable=False)  # superadmin|admin|user
    approved: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    # [{"pageId": "tickets", "permissions": ["view", "edit"]}]
    page_permissions: Mapped[list] = mapped_column(JSON, default=list, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)


class Station(Base):
    __tablename__ = "stations"

    id: Mapped[uuid.UUID] = uuid_pk()
    station_code: Mapped[str] = mapped_column(String(20), nullable=False)  # ST-001
    name: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    location: Mapped[str] = mapped_column(String(255), nullable=False)
    region: Mapped[str] = mapped_column(String(255), nullable=False)
    status: Mapped[str] = mapped_column(String(20), default="active")
    performance_score: Mapped[float] = mapped_column(Float, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)


class Technician(Base):
    __tablename__ = "technicians"

    id: Mapped[uuid.UUID] = uuid_pk()
    name: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    phone: Mapped[Optional[str]] = mapped_column(String(50))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)


class TicketCategory(Base):
    __tablename__ = "ticket_categories"

    id: Mapped[uuid.UUID] = uuid_pk()
    name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    price: Mapped[float] = mapped_column(Float, default=0, nullable=False)  # cost per ticket in this category
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)


class ExpenseCategory(Base):
    __tablename__ = "expense_categories"

    id: Mapped[uuid.UUID] = uuid_pk()
    name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)


class InternetConnection(Base):
    __tablename__ = "internet_connections"

    id: Mapped[uuid.UUID] = uuid_pk()
    station: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)  # immutable after creation
    starlink_emails: Mapped[list] = mapped_column(JSON, default=list, nullable=False)  # [{"email", "password"}]
    vpn_ips: Mapped[list] = mapped_column(JSON, default=list, nullable=False)  # [{"ip", "password"}]
    scheduled_for_deletion: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)


class EquipmentBatch(Base):
    __tablename__ = "equipment_batches"

    id: Mapped[uuid.UUID] = uuid_pk()
    batch_number: Mapped[str] = mapped_column(String(20), nullable=False)  # BATCH-001
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, default="")
    equipment_type: Mapped[str] = mapped_column(String(255), default="Mixed Equipment")
    quantity: Mapped[int] = mapped_column(Integer, default=0)
    purchase_date: Mapped[date] = mapped_column(Date, nullable=False)
    purchase_cost: Mapped[float] = mapped_column(Float, default=0)
    supplier: Mapped[Optional[str]] = mapped_column(String(255), default="")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    equipment = relationship(
        "Equipment",
        back_populates="batch",
        cascade="all, delete-orphan",
        order_by=lambda: (Equipment.created_at, Equipment.equipment_id),
    )


class Equipment(Base):
    __tablename__ = "equipment"

    id: Mapped[uuid.UUID] = uuid_pk()
    equipment_id: Mapped[str] = mapped_column(String(20), nullable=False, index=True)  # EQ-001
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    model: Mapped[str] = mapped_column(String(255), nullable=False)
    serial_number: Mapped[str] = mapped_column(String(100), unique=True, nullable=False, index=True)
    status: Mapped[str] = mapped_column(String(20), default="bought", nullable=False, index=True)
    cost: Mapped[float] = mapped_column(Float, default=0)
    warranty: Mapped[Optional[str]] = mapped_column(String(100))
    station: Mapped[Optional[str]] = mapped_column(String(255))
    client_name: Mapped[Optional[str]] = mapped_column(String(255))
    client_number: Mapped[Optional[str]] = mapped_column(String(100))
    install_date: Mapped[Optional[date]] = mapped_column(Date)
    last_service: Mapped[Optional[date]] = mapped_column(Date)
    installation_type: Mapped[str] = mapped_column(String(30), default="new-installation")
    replaced_equipment_id: Mapped[Optional[str]] = mapped_column(String(100))
    bought_date: Mapped[Optional[date]] = mapped_column(Date)
    batch_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("equipment_batches.id", ondelete="CASCADE"), index=True
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    batch = relationship("EquipmentBatch", back_populates="equipment")


class EquipmentTemplate(Base):
    __tablename__ = "equipment_templates"
    __table_args__ = (UniqueConstraint("name", "model", name="uq_equipment_template_name_model"),)

    id: Mapped[uuid.UUID] = uuid_pk()
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    model: Mapped[str] = mapped_column(String(255), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)


class Ticket(Base):
    __tablename__ = "tickets"

    id: Mapped[uuid.UUID] = uuid_pk()
    ticket_id: Mapped[str] = mapped_column(String(20), nullable=False, index=True)  # TKT-001
    client_name: Mapped[str] = mapped_column(String(255), nullable=False)
    client_number: Mapped[str] = mapped_column(String(100), nullable=False)
    station: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    house_number: Mapped[str] = mapped_column(String(100), nullable=False)
    category: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    status: Mapped[str] = mapped_column(String(20), default="open", nullable=False, index=True)
    date_time_reported: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    problem_description: Mapped[str] = mapped_column(Text, nullable=False)
    technicians: Mapped[list] = mapped_column(JSON, default=list, nullable=False)  # list of names
    resolved_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    resolution_notes: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, index=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)


class Expense(Base):
    __tablename__ = "expenses"

    id: Mapped[uuid.UUID] = uuid_pk()
    expense_id: Mapped[str] = mapped_column(String(20), unique=True, nullable=False, index=True)  # EXP-001
    description: Mapped[str] = mapped_column(Text, nullable=False)
    category: Mapped[str] = mapped_column(String(100), nullable=False)
    station: Mapped[Optional[str]] = mapped_column(String(255))  # None means "General"
    amount: Mapped[float] = mapped_column(Float, nullable=False)
    balance: Mapped[Optional[float]] = mapped_column(Float)
    expense_date: Mapped[date] = mapped_column("date", Date, nullable=False, index=True)
    status: Mapped[str] = mapped_column(String(20), default="partially-paid", nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)


class StationTask(Base):
    __tablename__ = "station_tasks"

    id: Mapped[uuid.UUID] = uuid_pk()
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    station_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    station_name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, default="")
    status: Mapped[str] = mapped_column(String(20), default="pending", nullable=False)  # pending|done
    # [{"technicianId", "name", "phone"}]
    technicians: Mapped[list] = mapped_column(JSON, default=list, nullable=False)
    created_by: Mapped[Optional[str]] = mapped_column(String(255))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))


class FormSubmission(Base):
    """Public website form payloads, kept even when the notification email fails."""

    __tablename__ = "form_submissions"

    id: Mapped[uuid.UUID] = uuid_pk()
    kind: Mapped[str] = mapped_column(String(40), nullable=False, index=True)  # contact|coverage|quote|call|job|open-application
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    payload: Mapped[dict] = mapped_column(JSON, default=dict, nullable=False)
    status: Mapped[str] = mapped_column(String(20), default="new", nullable=False)
    email_sent: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    email_error: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, index=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)


class EquipmentRequest(Base):
    """A station's request for equipment, reviewed by a superadmin."""

    __tablename__ = "equipment_requests"

    id: Mapped[uuid.UUID] = uuid_pk()
    request_id: Mapped[str] = mapped_column(String(20), unique=True, nullable=False, index=True)  # REQ-0001
    item_name: Mapped[str] = mapped_column(String(255), nullable=False)
    item_type: Mapped[str] = mapped_column(String(50), nullable=False)  # equipment|supplies|tools|other
    station: Mapped[str] = mapped_column(String(255), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    priority: Mapped[str] = mapped_column(String(20), default="medium", nullable=False)
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    additional_notes: Mapped[str] = mapped_column(Text, default="", nullable=False)
    status: Mapped[str] = mapped_column(String(20), default="pending", nullable=False, index=True)
    requested_by_email: Mapped[str] = mapped_column(String(255), nullable=False)
    requested_by_name: Mapped[str] = mapped_column(String(255), nullable=False)
    reviewed_by_email: Mapped[Optional[str]] = mapped_column(String(255))
    reviewed_by_name: Mapped[Optional[str]] = mapped_column(String(255))
    reviewed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    admin_notes: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, index=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)


class TicketCostClearance(Base):
    """Each row closes a ticket-cost period; the newest one marks where the running total restarts."""

    __tablename__ = "ticket_cost_clearances"

    id: Mapped[uuid.UUID] = uuid_pk()
    cleared_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, index=True)
    cleared_by: Mapped[str] = mapped_column(String(255), nullable=False)
    ticket_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_cost: Mapped[float] = mapped_column(Float, default=0, nullable=False)
    # [{"category": "No Internet", "count": 3, "total": 1500}]
    category_breakdown: Mapped[list] = mapped_column(JSON, default=list, nullable=False)
