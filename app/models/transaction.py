from sqlalchemy import Column, String, Float, DateTime, Boolean, ForeignKey, Text
from app.core.database import Base, new_id, utcnow


class Category(Base):
    __tablename__ = "categories"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), ForeignKey("users.id"), index=True, nullable=False)

    name = Column(String, nullable=False)
    type = Column(String, nullable=False)  # income | expense
    icon = Column(String, default="Tag")
    color = Column(String, default="#6366f1")
    budget = Column(Float, default=0.0)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)


class Transaction(Base):
    __tablename__ = "transactions"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), ForeignKey("users.id"), index=True, nullable=False)

    description = Column(String, nullable=False)
    # Unsigned; the sign comes from `type`
    amount = Column(Float, nullable=False)
    type = Column(String, nullable=False)
    category_id = Column(String(36), ForeignKey("categories.id", ondelete="SET NULL"), nullable=True, index=True)
    payment_method = Column(String, default="pix")
    status = Column(String, default="pending", index=True)
    transaction_date = Column(String(10), index=True, nullable=False)  # YYYY-MM-DD

    created_at = Column(DateTime, default=utcnow, index=True)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)


class CategorizationFeedback(Base):
    __tablename__ = "categorization_feedback"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), ForeignKey("users.id"), index=True, nullable=False)
    transaction_id = Column(String(36), ForeignKey("transactions.id", ondelete="CASCADE"), nullable=False)

    suggested_category_id = Column(String(36), nullable=True)
    correct_category_id = Column(String(36), nullable=False)
    was_correct = Column(Boolean, nullable=False)
    notes = Column(Text, nullable=True)

    created_at = Column(DateTime, default=utcnow)
