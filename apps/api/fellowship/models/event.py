import uuid
from datetime import datetime

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Integer, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from fellowship.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin

MAX_EVENT_CAPACITY = 10_000


class Event(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    __tablename__ = "events"
    __table_args__ = (
        CheckConstraint("ends_at > starts_at", name="ck_events_schedule_window"),
        CheckConstraint(
            "max_capacity IS NULL OR max_capacity >= 1", name="ck_events_max_capacity_positive"
        ),
    )

    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    location: Mapped[str | None] = mapped_column(String(500), nullable=True)
    starts_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    ends_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    # None means unlimited
    max_capacity: Mapped[int | None] = mapped_column(Integer, nullable=True)

    # One-way: once set the event accepts no further RSVPs
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    created_by_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("members.id", ondelete="RESTRICT"), nullable=False
    )

    @property
    def is_cancelled(self) -> bool:
        return self.cancelled_at is not None
