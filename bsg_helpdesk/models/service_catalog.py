from sqlalchemy import Column, Integer, String, Text, Boolean, DateTime, ForeignKey, JSON
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from bsg_helpdesk.core.database import Base

FIELD_TYPES = (
    "text",
    "textarea",
    "number",
    "currency",
    "date",
    "datetime",
    "email",
    "phone",
    "dropdown",
    "radio",
    "checkbox",
)


class ServiceCatalog(Base):
    __tablename__ = "service_catalogs"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    department_id = Column(Integer, ForeignKey("departments.id"), nullable=False, index=True)
    is_active = Column(Boolean, default=True, nullable=False)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, onupdate=func.now())

    department = relationship("Department")
    items = relationship("ServiceItem", back_populates="catalog", order_by="ServiceItem.sort_order")


class ServiceItem(Base):
    __tablename__ = "service_items"

    id = Column(Integer, primary_key=True, index=True)
    catalog_id = Column(Integer, ForeignKey("service_catalogs.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    request_type = Column(String(32), default="service_request", nullable=False)  # service_request | incident
    is_kasda_related = Column(Boolean, default=False, nullable=False)
    requires_gov_approval = Column(Boolean, default=False, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    sort_order = Column(Integer, default=0, nullable=False)

    created_at = Column(DateTime, server_default=func.now())

    catalog = relationship("ServiceCatalog", back_populates="items")
    templates = relationship("ServiceTemplate", back_populates="item", order_by="ServiceTemplate.sort_order")
    fields = relationship(
        "CustomFieldDefinition",
        primaryjoin="ServiceItem.id == CustomFieldDefinition.service_item_id",
        order_by="CustomFieldDefinition.sort_order",
        viewonly=True,
    )


class ServiceTemplate(Base):
    __tablename__ = "service_templates"

    id = Column(Integer, primary_key=True, index=True)
    service_item_id = Column(Integer, ForeignKey("service_items.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    is_visible = Column(Boolean, default=True, nullable=False)
    requires_business_approval = Column(Boolean, default=False, nullable=False)
    estimated_resolution_hours = Column(Integer, nullable=True)
    sort_order = Column(Integer, default=0, nullable=False)

    created_at = Column(DateTime, server_default=func.now())

    item = relationship("ServiceItem", back_populates="templates")
    fields = relationship(
        "CustomFieldDefinition",
        primaryjoin="ServiceTemplate.id == CustomFieldDefinition.service_template_id",
        order_by="CustomFieldDefinition.sort_order",
        viewonly=True,
    )


class CustomFieldDefinition(Base):
    """A form field attached to either a service template or a service item."""

    __tablename__ = "custom_field_definitions"

    id = Column(Integer, primary_key=True, index=True)
    service_template_id = Column(Integer, ForeignKey("service_templates.id"), nullable=True, index=True)
    service_item_id = Column(Integer, ForeignKey("service_items.id"), nullable=True, index=True)
    field_name = Column(String(128), nullable=False)
    field_label = Column(String(255), nullable=False)
    field_type = Column(String(32), default="text", nullable=False)
    options = Column(JSON, nullable=True)
    is_required = Column(Boolean, default=False, nullable=False)
    placeholder = Column(String(255), nullable=True)
    default_value = Column(String(255), nullable=True)
    validation_rules = Column(JSON, nullable=True)  # min_length, max_length, min, max, pattern
    sort_order = Column(Integer, default=0, nullable=False)
