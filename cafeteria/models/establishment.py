"""
Establishment model (school / institute served by the cafeteria)
"""
from sqlalchemy import Column, Integer, String, DateTime
from sqlalchemy.sql import func
from cafeteria.database import Base


class Establishment(Base):
    __tablename__ = "establishments"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, unique=True, nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
