import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import relationship

from .database import Base


def generate_id():
    return str(uuid.uuid4())


def utc_now() -> datetime:
    """Naive UTC timestamp, the form every DateTime column stores"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Tenant(Base):
    """Installing company or agency"""

    __tablename__ = "tenants"

    id = Column(String(64), primary_key=True, default=generate_id)
    created_at = Column(DateTime, default=utc_now, nullable=False)
    name = Column(String(255), nullable=False)
    install_context = Column(String(20), nullable=False)  # agency, location
    agency_id = Column(String(64), nullable=True, index=True)

    locations = relationship("Location", back_populates="tenant", cascade="all, delete-orphan")
    tokens = relationship("Token", back_populates="tenant", cascade="all, delete-orphan")
    jobs = relationship("Job", back_populates="tenant", cascade="all, delete-orphan")


class Location(Base):
    """CRM sub-account"""

    __tablename__ = "locations"

    id = Column(String(64), primary_key=True)
    tenant_id = Column(
        String(64), ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name = Column(String(255), nullable=False)
    time_zone = Column(String(64), nullable=False)
    is_enabled = Column(Boolean, default=True, nullable=False)

    tenant = relationship("Tenant", back_populates="locations")


class Token(Base):
    """Encrypted OAuth tokens; location_id is NULL for agency-level tokens"""

    __tablename__ = "tokens"
    __table_args__ = (Index("tokens_tenant_location_idx", "tenant_id", "location_id"),)

    id = Column(String(64), primary_key=True, default=generate_id)
    tenant_id = Column(String(64), ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False)
    location_id = Column(
        String(64), ForeignKey("locations.id", ondelete="CASCADE"), nullable=True
    )
    access_token = Column(Text, nullable=False)
    refresh_token = Column(Text, nullable=False)
    scope = Column(Text, nullable=False, default="")
    expires_at = Column(DateTime, nullable=False, index=True)
    user_type = Column(String(20), nullable=False, default="Location")  # Location, Company
    company_id = Column(String(64), nullable=True)

    tenant = relationship("Tenant", back_populates="tokens")
    location = relationship("Location")


class Job(Base):
    """Bulk calendar operation"""

    __tablename__ = "jobs"

    id = Column(String(64), primary_key=True, default=generate_id)
    tenant_id = Column(
        String(64), ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False, index=True
    )
    location_id = Column(String(64), nullable=True)
    type = Column(String(32), nullable=False)  # create_calendars, delete_calendars
    status = Column(String(20), nullable=False, default="queued", index=True)
    total = Column(Integer, nullable=False)
    success_count = Column(Integer, default=0, nullable=False)
    error_count = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime, default=utc_now, nullable=False, index=True)
    updated_at = Column(DateTime, default=utc_now, onupdate=utc_now, nullable=False)

    tenant = relationship("Tenant", back_populates="jobs")
    items = relationship(
        "JobItem", back_populates="job", cascade="all, delete-orphan", order_by="JobItem.position"
    )


class JobItem(Base):
    """Single calendar create/delete within a job"""

    __tablename__ = "job_items"

    id = Column(String(64), primary_key=True, default=generate_id)
    job_id = Column(String(64), ForeignKey("jobs.id", ondelete="CASCADE"), nullable=False, index=True)
    position = Column(Integer, nullable=False, default=0)
    input = Column(JSON, nullable=False)
    result = Column(JSON, nullable=True)
    status = Column(String(20), nullable=False, default="pending", index=True)
    error_message = Column(Text, nullable=True)

    job = relationship("Job", back_populates="items")


class BatchUpdate(Base):
    """Audit log of availability batch updates"""

    __tablename__ = "batch_updates"

    id = Column(Integer, primary_key=True, index=True)
    location_id = Column(String(64), nullable=False, index=True)
    update_type = Column(String(20), nullable=False)  # remove, override, block
    update_data = Column(JSON, nullable=False)
    calendars_updated = Column(JSON, nullable=False)
    successful_count = Column(Integer, default=0, nullable=False)
    failed_count = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime, default=utc_now, nullable=False)
