import uuid
from datetime import datetime

from sqlalchemy import CheckConstraint, JSON, DateTime, ForeignKey, String, Text, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, validates

from .base import Base

ALLOWED_ACTOR_TYPES = frozenset({"user", "system"})


class AuditLog(Base):
    """Append-only record of security-relevant actions."""

    __tablename__ = "audit_logs"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    # Always the real authenticated actor, never an impersonated identity
    actor_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    actor_type: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    action: Mapped[str] = mapped_column(
        String(100), nullable=False, index=True
    )  # e.g., 'impersonation_start', 'user.ban'
    entity_type: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    entity_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    before: Mapped[dict | None] = mapped_column(JSON)
    after: Mapped[dict | None] = mapped_column(JSON)
    reason: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False, index=True
    )

    __table_args__ = (
        CheckConstraint("actor_type IN ('user', 'system')", name="valid_actor_type"),
    )

    @validates("actor_type")
    def validate_actor_type(self, key: str, value: str) -> str:
        if value not in ALLOWED_ACTOR_TYPES:
            raise ValueError(
                f"Invalid actor_type '{value}'. "
                f"Must be one of: {', '.join(sorted(ALLOWED_ACTOR_TYPES))}"
            )
        return value
