"""
Usage counter sources.

Client and TrainingSession rows are owned by the client/session CRUD
surface. The entitlement core only counts them; it never writes here.
"""

from sqlalchemy import Column, String, Boolean, DateTime, ForeignKey, Index

from treniko.models.base import Base, TimestampMixin, TenantScopedMixin, generate_uuid


class Client(Base, TimestampMixin, TenantScopedMixin):
    """A trainer's client. Only active clients count against max_clients."""

    __tablename__ = "clients"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    name = Column(String(255), nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)

    __table_args__ = (
        Index("ix_clients_tenant_active", "tenant_id", "is_active"),
    )

    def __repr__(self) -> str:
        return f"<Client(id={self.id}, tenant_id={self.tenant_id}, is_active={self.is_active})>"


class TrainingSession(Base, TimestampMixin, TenantScopedMixin):
    """A scheduled training session. Counted per calendar month of creation."""

    __tablename__ = "training_sessions"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    client_id = Column(
        String(36),
        ForeignKey("clients.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )
    scheduled_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index("ix_training_sessions_tenant_created", "tenant_id", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<TrainingSession(id={self.id}, tenant_id={self.tenant_id})>"
