"""
Meal plan (entitlement) and meal consumption (redemption) models
"""
from sqlalchemy import (
    Column, Integer, Date, DateTime, Boolean, ForeignKey, UniqueConstraint, Enum as SQLEnum
)
from sqlalchemy.orm import relationship
from datetime import datetime
from cafeteria.database import Base
from enum import Enum


class Meal(str, Enum):
    PETIT_DEJEUNER = "PETIT_DEJEUNER"  # breakfast
    DEJEUNER = "DEJEUNER"              # lunch
    DINER = "DINER"                    # dinner


class MealPlan(Base):
    """One planned meal slot for a person"""
    __tablename__ = "meal_plans"

    id = Column(Integer, primary_key=True, index=True)
    person_id = Column(Integer, ForeignKey("people.id", ondelete="CASCADE"), nullable=False, index=True)
    date = Column(Date, nullable=False, index=True)
    meal = Column(SQLEnum(Meal, native_enum=False), nullable=False)
    planned = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime, default=datetime.utcnow)

    # Relationships
    person = relationship("Person")

    __table_args__ = (
        UniqueConstraint("person_id", "date", "meal", name="uq_meal_plan_person_date_meal"),
    )


class MealConsumption(Base):
    """A redeemed meal slot. Rows are append-only."""
    __tablename__ = "meal_consumptions"

    id = Column(Integer, primary_key=True, index=True)
    person_id = Column(Integer, ForeignKey("people.id", ondelete="CASCADE"), nullable=False, index=True)
    date = Column(Date, nullable=False, index=True)
    meal = Column(SQLEnum(Meal, native_enum=False), nullable=False)
    consumed_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    scanner_user_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    establishment_id = Column(Integer, ForeignKey("establishments.id"), nullable=True)

    # Relationships
    person = relationship("Person")

    __table_args__ = (
        UniqueConstraint("person_id", "date", "meal", name="uq_meal_consumption_person_date_meal"),
    )
