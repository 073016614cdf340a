from sqlalchemy import Column, String, DateTime, Boolean, ForeignKey, Text
from app.core.database import Base, new_id, utcnow


class User(Base):
    __tablename__ = "users"

    # Same id as the auth provider's user
    id = Column(String(36), primary_key=True)
    email = Column(String, index=True, nullable=False, default="")
    full_name = Column(String, nullable=True)
    phone = Column(String, unique=True, index=True, nullable=True)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)


class WhatsAppMessage(Base):
    __tablename__ = "whatsapp_messages"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), ForeignKey("users.id"), index=True, nullable=False)

    message_text = Column(Text, nullable=False)
    sender = Column(String, nullable=False)  # user | bot
    message_type = Column(String, default="text")  # text | transaction | balance | report
    processed = Column(Boolean, default=False)
    transaction_id = Column(String(36), ForeignKey("transactions.id", ondelete="SET NULL"), nullable=True)

    created_at = Column(DateTime, default=utcnow)
