"""
Feedback model: one rating and comment per (event, user).
"""

from sqlalchemy import CheckConstraint, Column, ForeignKey, Integer, String, Text, UniqueConstraint

from event_portal.db.base import Base, TimestampMixin, new_id


class Feedback(Base, TimestampMixin):
    __tablename__ = "feedback"

    id = Column(String(36), primary_key=True, default=new_id)
    event_id = Column(String(36), ForeignKey("events.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(String(36), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False)
    rating = Column(Integer, nullable=False)
    comment = Column(Text, nullable=False)

    __table_args__ = (
        UniqueConstraint("event_id", "user_id", name="uq_feedback_event_user"),
        CheckConstraint("rating BETWEEN 1 AND 5", name="check_feedback_rating_range"),
    )

    def __repr__(self) -> str:
        return f"<Feedback(id={self.id}, event={self.event_id}, user={self.user_id}, rating={self.rating})>"
