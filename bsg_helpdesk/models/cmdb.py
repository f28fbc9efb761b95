from sqlalchemy import (
    Column,
    Integer,
    String,
    Text,
    Boolean,
    DateTime,
    ForeignKey,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from bsg_helpdesk.core.database import Base

CI_STATUSES = ("active", "inactive", "maintenance", "retired", "failed")
CI_CRITICALITIES = ("low", "medium", "high", "critical")
RELATIONSHIP_TYPES = ("depends_on", "runs_on", "hosted_on", "connects_to", "part_of", "uses")
CHANGE_STATUSES = ("planning", "approved", "implemented", "cancelled")


class CIType(Base):
    __tablename__ = "ci_types"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(128), unique=True, nullable=False)
    category = Column(String(64), nullable=False)  # infrastructure | application | service | ...
    description = Column(Text, nullable=True)
    icon = Column(String(64), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, server_default=func.now())

    attributes = relationship(
        "CIAttribute", back_populates="ci_type", order_by="CIAttribute.sort_order", cascade="all, delete-orphan"
    )


class CIAttribute(Base):
    __tablename__ = "ci_attributes"

    id = Column(Integer, primary_key=True, index=True)
    ci_type_id = Column(Integer, ForeignKey("ci_types.id"), nullable=False, index=True)
    name = Column(String(128), nullable=False)
    display_name = Column(String(255), nullable=False)
    attribute_type = Column(String(32), default="text", nullable=False)
    is_required = Column(Boolean, default=False, nullable=False)
    sort_order = Column(Integer, default=0, nullable=False)

    ci_type = relationship("CIType", back_populates="attributes")


class ConfigurationItem(Base):
    __tablename__ = "configuration_items"

    id = Column(Integer, primary_key=True, index=True)
    ci_id = Column(String(32), unique=True, index=True, nullable=False)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    ci_type_id = Column(Integer, ForeignKey("ci_types.id"), nullable=False, index=True)
    asset_id = Column(Integer, ForeignKey("assets.id"), nullable=True)
    location_id = Column(Integer, ForeignKey("asset_locations.id"), nullable=True)
    owner_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    created_by_user_id = Column(Integer, ForeignKey("users.id"), nullable=False)

    status = Column(String(32), default="active", nullable=False, index=True)
    environment = Column(String(32), nullable=True)  # production | staging | development | test
    business_criticality = Column(String(16), default="medium", nullable=False)
    version = Column(String(64), nullable=True)
    ip_address = Column(String(64), nullable=True)
    hostname = Column(String(255), nullable=True)
    operating_system = Column(String(128), nullable=True)
    notes = Column(Text, nullable=True)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    ci_type = relationship("CIType")
    asset = relationship("Asset")
    location = relationship("AssetLocation")
    owner = relationship("User", foreign_keys=[owner_id])
    attribute_values = relationship("CIAttributeValue", back_populates="ci", cascade="all, delete-orphan")


class CIAttributeValue(Base):
    __tablename__ = "ci_attribute_values"
    __table_args__ = (UniqueConstraint("ci_id", "attribute_id", name="uq_ci_attribute_value"),)

    id = Column(Integer, primary_key=True, index=True)
    ci_id = Column(Integer, ForeignKey("configuration_items.id"), nullable=False, index=True)
    attribute_id = Column(Integer, ForeignKey("ci_attributes.id"), nullable=False)
    value = Column(Text, nullable=True)

    ci = relationship("ConfigurationItem", back_populates="attribute_values")
    attribute = relationship("CIAttribute")


class CIRelationship(Base):
    __tablename__ = "ci_relationships"
    __table_args__ = (
        UniqueConstraint("parent_ci_id", "child_ci_id", "relationship_type", name="uq_ci_relationship"),
    )

    id = Column(Integer, primary_key=True, index=True)
    parent_ci_id = Column(Integer, ForeignKey("configuration_items.id"), nullable=False, index=True)
    child_ci_id = Column(Integer, ForeignKey("configuration_items.id"), nullable=False, index=True)
    relationship_type = Column(String(32), nullable=False)
    description = Column(Text, nullable=True)
    created_at = Column(DateTime, server_default=func.now())

    parent = relationship("ConfigurationItem", foreign_keys=[parent_ci_id])
    child = relationship("ConfigurationItem", foreign_keys=[child_ci_id])


class CIIncident(Base):
    __tablename__ = "ci_incidents"
    __table_args__ = (UniqueConstraint("ci_id", "ticket_id", name="uq_ci_incident"),)

    id = Column(Integer, primary_key=True, index=True)
    ci_id = Column(Integer, ForeignKey("configuration_items.id"), nullable=False, index=True)
    ticket_id = Column(Integer, ForeignKey("tickets.id"), nullable=False, index=True)
    impact = Column(String(16), default="low", nullable=False)
    created_at = Column(DateTime, server_default=func.now())

    ci = relationship("ConfigurationItem")
    ticket = relationship("Ticket")


class CIChange(Base):
    __tablename__ = "ci_changes"

    id = Column(Integer, primary_key=True, index=True)
    ci_id = Column(Integer, ForeignKey("configuration_items.id"), nullable=False, index=True)
    change_type = Column(String(64), nullable=False)
    change_description = Column(Text, nullable=False)
    planned_date = Column(DateTime, nullable=True)
    impact = Column(String(16), default="low", nullable=False)
    status = Column(String(16), default="planning", nullable=False, index=True)
    notes = Column(Text, nullable=True)
    requested_by_user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    approved_by_user_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    approved_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, server_default=func.now())

    ci = relationship("ConfigurationItem")
