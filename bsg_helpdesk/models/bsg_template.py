from sqlalchemy import Column, Integer, String, Text, Boolean, DateTime, Float, ForeignKey, JSON
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from bsg_helpdesk.core.database import Base


class BSGTemplateCategory(Base):
    __tablename__ = "bsg_template_categories"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(128), unique=True, nullable=False)
    display_name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    icon = Column(String(64), nullable=True)
    sort_order = Column(Integer, default=0, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)

    templates = relationship("BSGTemplate", back_populates="category")


class BSGTemplate(Base):
    __tablename__ = "bsg_templates"

    id = Column(Integer, primary_key=True, index=True)
    category_id = Column(Integer, ForeignKey("bsg_template_categories.id"), nullable=False, index=True)
    template_number = Column(Integer, nullable=False, index=True)
    name = Column(String(255), nullable=False)
    display_name = Column(String(255), nullable=True)
    description = Column(Text, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    popularity_score = Column(Float, default=0.0, nullable=False)
    usage_count = Column(Integer, default=0, nullable=False)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, onupdate=func.now())

    category = relationship("BSGTemplateCategory", back_populates="templates")
    fields = relationship(
        "BSGTemplateField",
        back_populates="template",
        order_by="BSGTemplateField.sort_order",
        cascade="all, delete-orphan",
    )


class BSGFieldType(Base):
    __tablename__ = "bsg_field_types"

    id = Column(Integer, primary_key=True, index=True)
    # e.g. "text", "number", "dropdown_branch", "dropdown_olibs_menu"
    name = Column(String(64), unique=True, nullable=False)
    display_name = Column(String(128), nullable=False)
    html_input_type = Column(String(32), default="text", nullable=False)


class BSGTemplateField(Base):
    __tablename__ = "bsg_template_fields"

    id = Column(Integer, primary_key=True, index=True)
    template_id = Column(Integer, ForeignKey("bsg_templates.id"), nullable=False, index=True)
    field_type_id = Column(Integer, ForeignKey("bsg_field_types.id"), nullable=False)
    field_name = Column(String(128), nullable=False)
    field_label = Column(String(255), nullable=False)
    field_description = Column(Text, nullable=True)
    is_required = Column(Boolean, default=False, nullable=False)
    max_length = Column(Integer, nullable=True)
    sort_order = Column(Integer, default=0, nullable=False)
    placeholder_text = Column(String(255), nullable=True)
    help_text = Column(Text, nullable=True)
    validation_rules = Column(JSON, nullable=True)
    # {"field": "<other field_name>", "equals": value} or {"field": ..., "in": [values]}
    show_when = Column(JSON, nullable=True)

    template = relationship("BSGTemplate", back_populates="fields")
    field_type = relationship("BSGFieldType")
    options = relationship(
        "BSGFieldOption",
        back_populates="field",
        order_by="BSGFieldOption.sort_order",
        cascade="all, delete-orphan",
    )


class BSGFieldOption(Base):
    __tablename__ = "bsg_field_options"

    id = Column(Integer, primary_key=True, index=True)
    field_id = Column(Integer, ForeignKey("bsg_template_fields.id"), nullable=False, index=True)
    option_value = Column(String(255), nullable=False)
    option_label = Column(String(255), nullable=False)
    is_default = Column(Boolean, default=False, nullable=False)
    sort_order = Column(Integer, default=0, nullable=False)

    field = relationship("BSGTemplateField", back_populates="options")


class BSGMasterData(Base):
    """Shared lookup rows (branches, OLIBS menus, ...) backing ``dropdown_<type>`` fields."""

    __tablename__ = "bsg_master_data"

    id = Column(Integer, primary_key=True, index=True)
    data_type = Column(String(64), nullable=False, index=True)
    code = Column(String(64), nullable=True)
    name = Column(String(255), nullable=False)
    display_name = Column(String(255), nullable=True)
    parent_id = Column(Integer, ForeignKey("bsg_master_data.id"), nullable=True)
    extra_data = Column("metadata", JSON, nullable=True)
    sort_order = Column(Integer, default=0, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)


class BSGTemplateUsageLog(Base):
    __tablename__ = "bsg_template_usage_logs"

    id = Column(Integer, primary_key=True, index=True)
    template_id = Column(Integer, ForeignKey("bsg_templates.id"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    department_id = Column(Integer, ForeignKey("departments.id"), nullable=True)
    ticket_id = Column(Integer, ForeignKey("tickets.id"), nullable=True)
    action_type = Column(String(32), nullable=False)  # viewed | started | completed | abandoned
    session_id = Column(String(128), nullable=True)
    completion_time_ms = Column(Integer, nullable=True)

    created_at = Column(DateTime, server_default=func.now())
