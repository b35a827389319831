"""
Capability models

A capability is a named permission string (e.g. "article.publish"),
independent of role. Grants come from two tables:
- RoleCapability: every user of the role holds it
- UserCapability: an individual override grant

Owner never has rows in either table; resolution special-cases it.
"""
from datetime import datetime, timezone
from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship

from app.core.database import Base


class Capability(Base):
    """Static reference data, seeded from SYSTEM_CAPABILITIES on startup."""
    __tablename__ = "capabilities"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), unique=True, nullable=False, index=True)
    description = Column(Text, nullable=True)
    category = Column(String(50), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    role_grants = relationship("RoleCapability", back_populates="capability", cascade="all, delete-orphan")
    user_grants = relationship("UserCapability", back_populates="capability", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<Capability(id={self.id}, name='{self.name}')>"


class RoleCapability(Base):
    __tablename__ = "role_capabilities"

    id = Column(Integer, primary_key=True, index=True)
    role = Column(String(20), nullable=False, index=True)
    capability_id = Column(Integer, ForeignKey("capabilities.id", ondelete="CASCADE"), nullable=False)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    capability = relationship("Capability", back_populates="role_grants")

    __table_args__ = (
        UniqueConstraint('role', 'capability_id', name='uq_role_capability'),
    )

    def __repr__(self):
        return f"<RoleCapability(role='{self.role}', capability_id={self.capability_id})>"


class UserCapability(Base):
    __tablename__ = "user_capabilities"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    capability_id = Column(Integer, ForeignKey("capabilities.id", ondelete="CASCADE"), nullable=False)
    granted_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    granted_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    user = relationship("User", foreign_keys=[user_id], back_populates="capability_grants")
    granter = relationship("User", foreign_keys=[granted_by])
    capability = relationship("Capability", back_populates="user_grants")

    __table_args__ = (
        UniqueConstraint('user_id', 'capability_id', name='uq_user_capability'),
    )

    def __repr__(self):
        return f"<UserCapability(user_id={self.user_id}, capability_id={self.capability_id})>"


# Built-in catalog - seeded on startup
SYSTEM_CAPABILITIES = [
    # Content
    {"name": "article.create", "category": "content", "description": "Create articles"},
    {"name": "article.edit.own", "category": "content", "description": "Edit own articles"},
    {"name": "article.edit.any", "category": "content", "description": "Edit any article"},
    {"name": "article.delete.own", "category": "content", "description": "Delete own articles"},
    {"name": "article.delete.any", "category": "content", "description": "Delete any article"},
    {"name": "article.publish", "category": "content", "description": "Publish articles"},
    {"name": "page.create", "category": "content", "description": "Create pages"},
    {"name": "page.edit", "category": "content", "description": "Edit pages"},
    {"name": "page.delete", "category": "content", "description": "Delete pages"},
    {"name": "media.upload", "category": "content", "description": "Upload media"},
    {"name": "media.delete", "category": "content", "description": "Delete media"},
    {"name": "comment.moderate", "category": "content", "description": "Moderate comments"},
    # Ecommerce
    {"name": "product.create", "category": "ecommerce", "description": "Create products"},
    {"name": "product.edit", "category": "ecommerce", "description": "Edit products"},
    {"name": "product.delete", "category": "ecommerce", "description": "Delete products"},
    {"name": "order.view.all", "category": "ecommerce", "description": "View all orders"},
    {"name": "order.edit", "category": "ecommerce", "description": "Edit order status"},
    {"name": "order.refund", "category": "ecommerce", "description": "Refund orders"},
    {"name": "review.moderate", "category": "ecommerce", "description": "Moderate product reviews"},
    # Users
    {"name": "user.create", "category": "users", "description": "Create users"},
    {"name": "user.edit", "category": "users", "description": "Edit users"},
    {"name": "user.delete", "category": "users", "description": "Delete users"},
    {"name": "user.assign_role", "category": "users", "description": "Change user roles"},
    {"name": "user.assign_capability", "category": "users", "description": "Grant individual capabilities"},
    # System
    {"name": "system.configure", "category": "system", "description": "Change site configuration"},
    {"name": "system.view_audit", "category": "system", "description": "View audit logs"},
    {"name": "system.export_data", "category": "system", "description": "Export data"},
]
