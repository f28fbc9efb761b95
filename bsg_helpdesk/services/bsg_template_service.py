from typing import Any, Dict, FrozenSet, List, Optional, Set, Tuple

from sqlalchemy import func as sqlfunc, or_
from sqlalchemy.orm import Session, joinedload

from bsg_helpdesk.core.errors import NotFound
from bsg_helpdesk.models.bsg_template import (
    BSGMasterData,
    BSGTemplate,
    BSGTemplateCategory,
    BSGTemplateField,
    BSGTemplateUsageLog,
)
from bsg_helpdesk.models.user import User
from bsg_helpdesk.services.custom_field_service import check_value, stringify_value
from bsg_helpdesk.services.master_data_service import list_master_data

MASTER_DATA_PREFIX = "dropdown_"
USAGE_ACTIONS = ("viewed", "started", "completed", "abandoned")
POPULARITY_INCREMENT = 0.1


def master_data_type(field_type_name: str) -> Optional[str]:
    if field_type_name.startswith(MASTER_DATA_PREFIX) and len(field_type_name) > len(MASTER_DATA_PREFIX):
        return field_type_name[len(MASTER_DATA_PREFIX):]
    return None


def get_template(db: Session, template_id: int) -> BSGTemplate:
    template = (
        db.query(BSGTemplate)
        .options(joinedload(BSGTemplate.category))
        .filter(BSGTemplate.id == template_id, BSGTemplate.is_active == True)  # noqa: E712
        .first()
    )
    if not template:
        raise NotFound("Template not found")
    return template


def list_categories(db: Session) -> List[Tuple[BSGTemplateCategory, int]]:
    counts = dict(
        db.query(BSGTemplate.category_id, sqlfunc.count(BSGTemplate.id))
        .filter(BSGTemplate.is_active == True)  # noqa: E712
        .group_by(BSGTemplate.category_id)
        .all()
    )
    categories = (
        db.query(BSGTemplateCategory)
        .filter(BSGTemplateCategory.is_active == True)  # noqa: E712
        .order_by(BSGTemplateCategory.sort_order, BSGTemplateCategory.name)
        .all()
    )
    return [(c, counts.get(c.id, 0)) for c in categories]


def search_templates(
    db: Session,
    *,
    category_id: Optional[int] = None,
    search: Optional[str] = None,
    limit: int = 20,
    offset: int = 0,
) -> Tuple[List[BSGTemplate], int]:
    q = db.query(BSGTemplate).filter(BSGTemplate.is_active == True)  # noqa: E712
    if category_id is not None:
        q = q.filter(BSGTemplate.category_id == category_id)
    if search:
        pattern = f"%{search.strip()}%"
        q = q.filter(
            or_(
                BSGTemplate.name.ilike(pattern),
                BSGTemplate.display_name.ilike(pattern),
                BSGTemplate.description.ilike(pattern),
            )
        )
    total = q.count()
    rows = (
        q.options(joinedload(BSGTemplate.category))
        .order_by(
            BSGTemplate.popularity_score.desc(),
            BSGTemplate.usage_count.desc(),
            BSGTemplate.template_number,
        )
        .offset(offset)
        .limit(limit)
        .all()
    )
    return rows, total


def _template_fields(db: Session, template_id: int) -> List[BSGTemplateField]:
    return (
        db.query(BSGTemplateField)
        .options(joinedload(BSGTemplateField.field_type), joinedload(BSGTemplateField.options))
        .filter(BSGTemplateField.template_id == template_id)
        .order_by(BSGTemplateField.sort_order, BSGTemplateField.id)
        .all()
    )


def describe_template_fields(db: Session, template_id: int) -> List[Dict[str, Any]]:
    """Fields in render order with their type, options and master data."""
    get_template(db, template_id)
    fields = _template_fields(db, template_id)

    master_cache: Dict[str, List[BSGMasterData]] = {}
    described: List[Dict[str, Any]] = []
    for f in fields:
        data_type = master_data_type(f.field_type.name)
        master: List[BSGMasterData] = []
        if data_type:
            if data_type not in master_cache:
                master_cache[data_type] = list_master_data(db, data_type)
            master = master_cache[data_type]
        described.append(
            {
                "id": f.id,
                "field_name": f.field_name,
                "field_label": f.field_label,
                "field_description": f.field_description,
                "is_required": f.is_required,
                "max_length": f.max_length,
                "sort_order": f.sort_order,
                "placeholder_text": f.placeholder_text,
                "help_text": f.help_text,
                "validation_rules": f.validation_rules,
                "show_when": f.show_when,
                "field_type": {
                    "name": f.field_type.name,
                    "display_name": f.field_type.display_name,
                    "html_input_type": f.field_type.html_input_type,
                },
                "options": [
                    {
                        "value": o.option_value,
                        "label": o.option_label,
                        "is_default": o.is_default,
                    }
                    for o in f.options
                ],
                "master_data": [
                    {"id": m.id, "code": m.code, "name": m.name, "display_name": m.display_name}
                    for m in master
                ],
            }
        )
    return described


def is_field_visible(field: BSGTemplateField, values: Dict[str, Any]) -> bool:
    condition = field.show_when
    if not condition or not condition.get("field"):
        return True
    current = values.get(condition["field"])
    current = stringify_value(current) if current is not None else None
    if "equals" in condition:
        return current == stringify_value(condition["equals"])
    if "in" in condition:
        return current in [stringify_value(v) for v in condition["in"] or []]
    return bool(current)


def visible_field_names(fields: List[BSGTemplateField], values: Dict[str, Any]) -> Set[str]:
    """Names of the fields whose whole ``show_when`` chain holds.

    A field controlled by a hidden field is hidden too, whatever was submitted
    for the controller.
    """
    by_name = {f.field_name: f for f in fields}
    visibility: Dict[str, bool] = {}

    def resolve(name: str, seen: FrozenSet[str]) -> bool:
        if name not in visibility:
            field = by_name[name]
            controller = (field.show_when or {}).get("field")
            if controller in by_name and controller not in seen and not resolve(controller, seen | {name}):
                visibility[name] = False
            else:
                visibility[name] = is_field_visible(field, values)
        return visibility[name]

    return {f.field_name for f in fields if resolve(f.field_name, frozenset())}


def validate_submission(
    db: Session, template: BSGTemplate, values: Dict[str, Any]
) -> Tuple[Dict[str, str], List[str]]:
    """Validate a BSG form submission.

    Hidden conditional fields are dropped and never required. Returns the
    cleaned values keyed by field name and the list of problems.
    """
    fields = _template_fields(db, template.id)
    known = {f.field_name for f in fields}
    errors: List[str] = [f"Unknown field '{name}'." for name in values if name not in known]
    cleaned: Dict[str, str] = {}
    shown = visible_field_names(fields, values)

    for f in fields:
        if f.field_name not in shown:
            continue
        raw = values.get(f.field_name)
        value = stringify_value(raw) if raw is not None else ""
        if not value:
            if f.is_required:
                errors.append(f"Field '{f.field_label}' is required.")
            continue

        type_name = f.field_type.name
        option_values = [o.option_value for o in f.options]
        base_type = "dropdown" if master_data_type(type_name) else type_name
        errors.extend(
            check_value(
                label=f.field_label,
                field_type=base_type,
                value=value,
                options=option_values,
                rules=f.validation_rules,
            )
        )
        if f.max_length and len(value) > f.max_length:
            errors.append(f"Field '{f.field_label}' must be at most {f.max_length} characters.")

        data_type = master_data_type(type_name)
        if data_type and not option_values:
            match = (
                db.query(BSGMasterData.id)
                .filter(
                    BSGMasterData.data_type == data_type,
                    BSGMasterData.is_active == True,  # noqa: E712
                    or_(BSGMasterData.code == value, BSGMasterData.name == value),
                )
                .first()
            )
            if not match:
                errors.append(f"Invalid value '{value}' for field '{f.field_label}'.")

        cleaned[f.field_name] = value

    return cleaned, errors


def fields_by_name(db: Session, template_id: int) -> Dict[str, BSGTemplateField]:
    return {f.field_name: f for f in _template_fields(db, template_id)}


def log_usage(
    db: Session,
    template: BSGTemplate,
    *,
    action_type: str,
    user: Optional[User] = None,
    session_id: Optional[str] = None,
    completion_time_ms: Optional[int] = None,
    ticket_id: Optional[int] = None,
    commit: bool = True,
) -> BSGTemplateUsageLog:
    entry = BSGTemplateUsageLog(
        template_id=template.id,
        user_id=user.id if user else None,
        department_id=user.department_id if user else None,
        ticket_id=ticket_id,
        action_type=action_type,
        session_id=session_id,
        completion_time_ms=completion_time_ms,
    )
    db.add(entry)
    if action_type == "completed":
        template.usage_count = (template.usage_count or 0) + 1
        template.popularity_score = (template.popularity_score or 0.0) + POPULARITY_INCREMENT
    if commit:
        db.commit()
        db.refresh(entry)
    return entry
