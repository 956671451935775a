import uuid

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, String, Text, Uuid

from ..database import Base, utcnow


class TodoRow(Base):
    """SQLAlchemy model for a todo item; ``user_id`` is the owner."""

    __tablename__ = "todos"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False
    )
    title = Column(Text, nullable=False)
    description = Column(Text, nullable=True)
    completed = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)
    updated_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
