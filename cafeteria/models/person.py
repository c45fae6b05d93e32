"""
Person model - students and staff holding meal plans
"""
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Enum as SQLEnum
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from cafeteria.database import Base
from enum import Enum


class PersonType(str, Enum):
    STUDENT = "STUDENT"
    STAFF = "STAFF"


class Person(Base):
    __tablename__ = "people"

    id = Column(Integer, primary_key=True, index=True)
    matricule = Column(String, unique=True, nullable=False, index=True)  # registration number
    name = Column(String, nullable=False)
    email = Column(String, nullable=True)
    establishment_id = Column(Integer, ForeignKey("establishments.id"), nullable=True)
    type = Column(SQLEnum(PersonType, native_enum=False), nullable=False, default=PersonType.STUDENT)
    student_year = Column(Integer, nullable=True)  # 1..3 (L1/L2/L3)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    # Relationships
    establishment = relationship("Establishment")
