"""
User model

Role is a coarse classification (owner, admin, member). Fine-grained access
comes from capabilities granted to the role or directly to the user.
"""
import enum
from datetime import datetime, timezone
from sqlalchemy import Column, Integer, String, Boolean, DateTime, Index
from sqlalchemy.orm import relationship

from app.core.database import Base


class UserRole(str, enum.Enum):
    """Coarse user classification. OWNER implicitly holds every capability."""
    OWNER = "owner"
    ADMIN = "admin"
    MEMBER = "member"


class User(Base):
    """
    User account model.

    Created at registration, mutated on login/profile update, never hard-deleted
    (deactivate with is_active instead).
    """
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)

    email = Column(String, unique=True, index=True, nullable=False)
    hashed_password = Column(String, nullable=False)
    first_name = Column(String, nullable=True)
    last_name = Column(String, nullable=True)
    role = Column(String(20), nullable=False, default=UserRole.MEMBER.value)
    is_active = Column(Boolean, default=True)

    last_login_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc))

    # Relationships
    orders = relationship("Order", back_populates="user")
    capability_grants = relationship(
        "UserCapability",
        foreign_keys="UserCapability.user_id",
        back_populates="user",
        cascade="all, delete-orphan",
    )
    refresh_tokens = relationship("RefreshToken", back_populates="user", cascade="all, delete-orphan")

    __table_args__ = (
        Index('ix_users_role', 'role'),
    )

    def __repr__(self):
        return f"<User(id={self.id}, email='{self.email}', role='{self.role}')>"

    @property
    def is_staff(self) -> bool:
        """Owner or admin - may see other users' orders."""
        return self.role in (UserRole.OWNER.value, UserRole.ADMIN.value)
