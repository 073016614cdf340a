from sqlalchemy import Column, String, Float, DateTime, ForeignKey, Integer, Text, JSON
from app.core.database import Base, new_id, utcnow


class Bill(Base):
    __tablename__ = "bills"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), ForeignKey("users.id"), index=True, nullable=False)

    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    type = Column(String, nullable=False)  # payable | receivable
    amount = Column(Float, nullable=False)
    due_date = Column(String(10), index=True, nullable=False)  # YYYY-MM-DD
    status = Column(String, default="pending", index=True)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)


class Goal(Base):
    __tablename__ = "goals"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), ForeignKey("users.id"), index=True, nullable=False)

    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    target_amount = Column(Float, nullable=False)
    current_amount = Column(Float, nullable=False, default=0.0)
    target_date = Column(String(10), nullable=True)
    status = Column(String, default="active")

    # [{id, amount, notes, created_at}], newest first
    contributions = Column(JSON, nullable=False, default=list)
    # Bumped on every contributions write; guards read-modify-write
    version = Column(Integer, nullable=False, default=1)

    created_at = Column(DateTime, default=utcnow, index=True)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)
