"""
Event model with seat inventory tracking.

Key design decisions:
- `available_seats` is denormalized (avoids COUNT over registrations on every
  read); only the seat ledger writes it after creation
- CHECK constraints keep 0 <= available_seats <= total_seats as a last line
  of defence under the ledger's conditional updates
- Index on `event_date` for the upcoming-events listing
"""

from sqlalchemy import CheckConstraint, Column, ForeignKey, Index, Integer, String, Text

from event_portal.db.base import Base, TimestampMixin, UTCDateTime, new_id


class Event(Base, TimestampMixin):
    __tablename__ = "events"

    id = Column(String(36), primary_key=True, default=new_id)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=False, default="")
    location = Column(String(255), nullable=False, default="")
    event_date = Column(UTCDateTime, nullable=False)
    total_seats = Column(Integer, nullable=False)
    available_seats = Column(Integer, nullable=False)
    image_url = Column(String(1024), nullable=True)
    creator_id = Column(String(36), ForeignKey("profiles.id", ondelete="SET NULL"), nullable=True)

    __table_args__ = (
        CheckConstraint("available_seats >= 0", name="check_available_seats_non_negative"),
        CheckConstraint("total_seats > 0", name="check_total_seats_positive"),
        CheckConstraint("available_seats <= total_seats", name="check_available_lte_total"),
        Index("ix_events_event_date", "event_date"),
    )

    def __repr__(self) -> str:
        return f"<Event(id={self.id}, title={self.title}, available={self.available_seats}/{self.total_seats})>"
