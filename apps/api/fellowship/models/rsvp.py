import enum
import uuid
from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Index, String, Uuid, text
from sqlalchemy import Enum as SAEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from fellowship.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin
from fellowship.models.event import Event
from fellowship.models.member import Member


class RSVPStatus(str, enum.Enum):
    CONFIRMED = "CONFIRMED"
    WAITLISTED = "WAITLISTED"
    CANCELLED = "CANCELLED"


ACTIVE_RSVP_STATUSES = (RSVPStatus.CONFIRMED, RSVPStatus.WAITLISTED)

ACTIVE_RSVP_INDEX = "uq_rsvps_active_event_member"

_ACTIVE_WHERE = text("status IN ('CONFIRMED', 'WAITLISTED')")


class RSVP(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    __tablename__ = "rsvps"
    __table_args__ = (
        # Cancelled rows stay for the audit trail, so uniqueness only covers
        # the active ones.
        Index(
            ACTIVE_RSVP_INDEX,
            "event_id",
            "member_id",
            unique=True,
            postgresql_where=_ACTIVE_WHERE,
            sqlite_where=_ACTIVE_WHERE,
        ),
        Index("ix_rsvps_event_status_created", "event_id", "status", "created_at"),
        Index("ix_rsvps_member_id", "member_id"),
    )

    event_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("events.id", ondelete="CASCADE"), nullable=False
    )
    member_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("members.id", ondelete="CASCADE"), nullable=False
    )
    status: Mapped[RSVPStatus] = mapped_column(
        SAEnum(RSVPStatus, name="rsvp_status", native_enum=False, length=16), nullable=False
    )
    notes: Mapped[str | None] = mapped_column(String(500), nullable=True)
    promoted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    event: Mapped[Event] = relationship(Event, lazy="joined", innerjoin=True)
    member: Mapped[Member] = relationship(Member, lazy="joined", innerjoin=True)
