"""Notification database model."""

from datetime import datetime
import uuid

from sqlalchemy import String, Text, ForeignKey, TIMESTAMP
from sqlalchemy.orm import Mapped, mapped_column

from liquidswap.database import Base


class Notification(Base):
    """A notification delivered to a user about a counterparty action."""

    __tablename__ = "notifications"

    # Primary Key
    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid.uuid4())
    )

    # Foreign Keys
    user_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    offer_id: Mapped[str | None] = mapped_column(
        String(36),
        ForeignKey("offers.id", ondelete="SET NULL"),
        nullable=True,
        index=True
    )

    # Content
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    body: Mapped[str] = mapped_column(Text, nullable=False)

    # Read Status
    read_at: Mapped[datetime | None] = mapped_column(
        TIMESTAMP,
        nullable=True,
        index=True
    )

    # Timestamp
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP,
        nullable=False,
        default=datetime.utcnow
    )

    def __repr__(self) -> str:
        return f"<Notification(id={self.id}, user={self.user_id}, title={self.title})>"
