from datetime import datetime
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import BigInteger, Integer, String, Text, ForeignKey, TIMESTAMP, text
from supportdesk.core.base import Base, TimestampMixin, utcnow

STATUSES = ("open", "in_progress", "resolved", "closed")
OPEN_STATUSES = ("open", "in_progress")
URGENCIES = ("low", "medium", "high", "critical")
CATEGORIES = ("account_management", "system_admin", "classroom_tech", "general")

DEFAULT_CATEGORY = "general"
DEFAULT_URGENCY = "medium"
DEFAULT_STATUS = "open"

# ---- Tickets ----

class Ticket(Base, TimestampMixin):
    __tablename__ = "tickets"

    id: Mapped[int] = mapped_column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True)
    # auth-service user id; nullable for legacy rows submitted before sign-in was required
    userid: Mapped[str | None] = mapped_column(String(64), index=True, nullable=True)
    # submitter email; the only owner link on legacy rows without a userid
    email: Mapped[str | None] = mapped_column(String(255), index=True, nullable=True)

    operating_system: Mapped[str | None] = mapped_column(String(64), nullable=True)
    issue_description: Mapped[str | None] = mapped_column(Text, nullable=True)
    department: Mapped[str | None] = mapped_column(String(16), nullable=True)

    # triage fields; the automation backend and staff overwrite these
    category: Mapped[str | None] = mapped_column(String(32), default=DEFAULT_CATEGORY)
    urgency: Mapped[str | None] = mapped_column(String(16), default=DEFAULT_URGENCY)
    status: Mapped[str | None] = mapped_column(String(16), default=DEFAULT_STATUS, index=True)
    assigned_to: Mapped[str | None] = mapped_column(String(120), nullable=True)

    estimated_time: Mapped[int | None] = mapped_column(Integer, nullable=True)  # minutes
    ai_confidence: Mapped[int | None] = mapped_column(Integer, nullable=True)  # 0-100
    ai_suggestions: Mapped[str | None] = mapped_column(Text, nullable=True)

    resolved_at: Mapped[datetime | None] = mapped_column(TIMESTAMP(timezone=True), nullable=True)
    resolution_notes: Mapped[str | None] = mapped_column(Text, nullable=True)

# ---- Follow-up messages ----

class TicketMessage(Base):
    __tablename__ = "ticket_messages"

    id: Mapped[int] = mapped_column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True)
    ticket_id: Mapped[int] = mapped_column(ForeignKey("tickets.id"), index=True)
    user_id: Mapped[str] = mapped_column(String(64))
    message: Mapped[str] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), default=utcnow, server_default=text("CURRENT_TIMESTAMP")
    )
