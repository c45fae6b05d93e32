"""
Printed meal tickets: a batch per establishment and period, one signed ticket
per person, day and meal
"""
from sqlalchemy import (
    Column, Integer, String, Date, DateTime, ForeignKey, UniqueConstraint, Enum as SQLEnum
)
from sqlalchemy.orm import relationship
from datetime import datetime
from cafeteria.database import Base
from cafeteria.models.meal_plan import Meal


class TicketBatch(Base):
    __tablename__ = "ticket_batches"

    id = Column(Integer, primary_key=True, index=True)
    establishment_id = Column(Integer, ForeignKey("establishments.id"), nullable=False, index=True)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    meals = Column(String, nullable=False)  # comma separated Meal values
    ticket_count = Column(Integer, nullable=False, default=0)
    created_by_id = Column(Integer, ForeignKey("users.id"), nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)

    # Relationships
    establishment = relationship("Establishment")


class Ticket(Base):
    __tablename__ = "tickets"

    id = Column(Integer, primary_key=True, index=True)
    batch_id = Column(Integer, ForeignKey("ticket_batches.id", ondelete="CASCADE"), nullable=False, index=True)
    person_id = Column(Integer, ForeignKey("people.id", ondelete="CASCADE"), nullable=False, index=True)
    establishment_id = Column(Integer, ForeignKey("establishments.id"), nullable=False)
    date = Column(Date, nullable=False)
    meal = Column(SQLEnum(Meal, native_enum=False), nullable=False)
    payload = Column(String, nullable=False)  # base64url JSON, what the QR code carries
    sig = Column(String, nullable=False)      # hex HMAC-SHA256 of payload
    used_at = Column(DateTime, nullable=True)

    # Relationships
    person = relationship("Person")

    __table_args__ = (
        UniqueConstraint("batch_id", "person_id", "date", "meal", name="uq_ticket_batch_person_date_meal"),
    )
