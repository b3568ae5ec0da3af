"""
Profile model: the identity behind a session, with its role.
"""

from sqlalchemy import Boolean, CheckConstraint, Column, String

from event_portal.db.base import Base, TimestampMixin, new_id


class Profile(Base, TimestampMixin):
    __tablename__ = "profiles"

    id = Column(String(36), primary_key=True, default=new_id)
    email = Column(String(255), unique=True, index=True, nullable=False)
    full_name = Column(String(255), nullable=False)
    hashed_password = Column(String(255), nullable=False)
    role = Column(String(20), nullable=False, default="user")  # admin, user
    is_active = Column(Boolean, default=True, nullable=False)

    __table_args__ = (
        CheckConstraint("role IN ('admin', 'user')", name="check_profile_role"),
    )

    def __repr__(self) -> str:
        return f"<Profile(id={self.id}, email={self.email}, role={self.role})>"
