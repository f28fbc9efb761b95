from sqlalchemy import (
    Column,
    Integer,
    String,
    Text,
    Boolean,
    Date,
    DateTime,
    Float,
    ForeignKey,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from bsg_helpdesk.core.database import Base

ASSET_CATEGORIES = ("hardware", "software", "network", "security", "facilities", "other")
ASSET_STATUSES = ("active", "in_stock", "in_maintenance", "retired", "disposed")
ASSET_CONDITIONS = ("new", "excellent", "good", "fair", "poor", "damaged", "non_functional")


class AssetType(Base):
    __tablename__ = "asset_types"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(128), unique=True, nullable=False)
    category = Column(String(32), default="other", nullable=False)
    description = Column(Text, nullable=True)


class AssetLocation(Base):
    __tablename__ = "asset_locations"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    address = Column(Text, nullable=True)
    department_id = Column(Integer, ForeignKey("departments.id"), nullable=True)


class Asset(Base):
    __tablename__ = "assets"

    id = Column(Integer, primary_key=True, index=True)
    asset_tag = Column(String(32), unique=True, index=True, nullable=False)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    asset_type_id = Column(Integer, ForeignKey("asset_types.id"), nullable=False, index=True)
    location_id = Column(Integer, ForeignKey("asset_locations.id"), nullable=True)
    assigned_to_user_id = Column(Integer, ForeignKey("users.id"), nullable=True)

    serial_number = Column(String(128), nullable=True)
    model = Column(String(128), nullable=True)
    manufacturer = Column(String(128), nullable=True)
    status = Column(String(32), default="in_stock", nullable=False, index=True)
    condition = Column(String(32), default="new", nullable=False)

    purchase_date = Column(Date, nullable=True)
    purchase_price = Column(Float, nullable=True)
    depreciation_rate = Column(Float, nullable=True)  # percent per year
    warranty_expiry = Column(Date, nullable=True)

    is_deleted = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, onupdate=func.now())

    asset_type = relationship("AssetType")
    location = relationship("AssetLocation")
    assigned_to = relationship("User")
    maintenance_records = relationship("AssetMaintenance", back_populates="asset", order_by="AssetMaintenance.id")
    contracts = relationship("AssetContract", back_populates="asset")


class AssetMaintenance(Base):
    __tablename__ = "asset_maintenance"

    id = Column(Integer, primary_key=True, index=True)
    asset_id = Column(Integer, ForeignKey("assets.id"), nullable=False, index=True)
    maintenance_type = Column(String(32), default="preventive", nullable=False)  # preventive | corrective | upgrade
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    status = Column(String(32), default="scheduled", nullable=False)
    cost = Column(Float, nullable=True)
    scheduled_date = Column(Date, nullable=True)
    completed_date = Column(Date, nullable=True)
    performed_by = Column(String(255), nullable=True)
    created_by_user_id = Column(Integer, ForeignKey("users.id"), nullable=True)

    created_at = Column(DateTime, server_default=func.now())

    asset = relationship("Asset", back_populates="maintenance_records")


class AssetTransfer(Base):
    __tablename__ = "asset_transfers"

    id = Column(Integer, primary_key=True, index=True)
    asset_id = Column(Integer, ForeignKey("assets.id"), nullable=False, index=True)
    from_user_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    to_user_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    from_location_id = Column(Integer, ForeignKey("asset_locations.id"), nullable=True)
    to_location_id = Column(Integer, ForeignKey("asset_locations.id"), nullable=True)
    status = Column(String(16), default="pending", nullable=False)  # pending | approved | rejected
    reason = Column(Text, nullable=True)
    requested_by_user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    approved_by_user_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    transferred_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, server_default=func.now())


class AssetContract(Base):
    __tablename__ = "asset_contracts"

    id = Column(Integer, primary_key=True, index=True)
    asset_id = Column(Integer, ForeignKey("assets.id"), nullable=False, index=True)
    contract_type = Column(String(32), nullable=False)  # maintenance | support | license | lease
    vendor = Column(String(255), nullable=True)
    cost = Column(Float, default=0.0, nullable=False)
    start_date = Column(Date, nullable=True)
    end_date = Column(Date, nullable=True)

    asset = relationship("Asset", back_populates="contracts")


class TicketAsset(Base):
    __tablename__ = "ticket_assets"
    __table_args__ = (UniqueConstraint("ticket_id", "asset_id", name="uq_ticket_asset"),)

    id = Column(Integer, primary_key=True, index=True)
    ticket_id = Column(Integer, ForeignKey("tickets.id"), nullable=False, index=True)
    asset_id = Column(Integer, ForeignKey("assets.id"), nullable=False, index=True)

    created_at = Column(DateTime, server_default=func.now())
