"""
Registration model: a user's claim on one seat of an event.

Cancellation flips `status` to `cancelled` and is terminal. The partial
unique index allows at most one *confirmed* row per (event, user), so a user
may register again after cancelling while double registration is rejected
by the database itself.
"""

import enum

from sqlalchemy import CheckConstraint, Column, ForeignKey, Index, String, text
from sqlalchemy.orm import relationship

from event_portal.db.base import Base, UTCDateTime, new_id, utcnow


class RegistrationStatus(str, enum.Enum):
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"


class Registration(Base):
    __tablename__ = "registrations"

    id = Column(String(36), primary_key=True, default=new_id)
    event_id = Column(String(36), ForeignKey("events.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(String(36), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True)
    registration_date = Column(UTCDateTime, nullable=False, default=utcnow)
    status = Column(String(20), nullable=False, default=RegistrationStatus.CONFIRMED.value)

    event = relationship("Event", lazy="selectin")

    __table_args__ = (
        CheckConstraint("status IN ('confirmed', 'cancelled')", name="check_registration_status"),
        Index(
            "uq_registrations_active_user_event",
            "event_id",
            "user_id",
            unique=True,
            postgresql_where=text("status = 'confirmed'"),
            sqlite_where=text("status = 'confirmed'"),
        ),
    )

    def __repr__(self) -> str:
        return f"<Registration(id={self.id}, user={self.user_id}, event={self.event_id}, status={self.status})>"
