import datetime as dt
import re
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import or_
from sqlalchemy.orm import Session

from bsg_helpdesk.core.errors import ValidationFailed
from bsg_helpdesk.models.service_catalog import CustomFieldDefinition, ServiceItem, ServiceTemplate

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
_PHONE_RE = re.compile(r"^\+?[0-9][0-9\s\-]{4,}$")


def split_multi_value(value: Any) -> List[str]:
    if isinstance(value, (list, tuple)):
        return [str(v).strip() for v in value if str(v).strip()]
    return [part.strip() for part in str(value).split(",") if part.strip()]


def stringify_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (list, tuple)):
        return ",".join(split_multi_value(value))
    return str(value).strip()


def parse_date(value: str) -> Optional[dt.datetime]:
    try:
        return dt.datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


def check_value(
    *,
    label: str,
    field_type: str,
    value: str,
    options: Optional[List[str]] = None,
    rules: Optional[Dict[str, Any]] = None,
) -> List[str]:
    """Return the problems with one non-empty value of a typed form field."""
    errors: List[str] = []
    rules = rules or {}

    if field_type in ("number", "currency"):
        try:
            number = float(value.replace(",", "")) if field_type == "currency" else float(value)
        except ValueError:
            errors.append(f"Field '{label}' must be a number.")
        else:
            if rules.get("min") is not None and number < float(rules["min"]):
                errors.append(f"Field '{label}' must be at least {rules['min']}.")
            if rules.get("max") is not None and number > float(rules["max"]):
                errors.append(f"Field '{label}' must be at most {rules['max']}.")
    elif field_type in ("date", "datetime"):
        if parse_date(value) is None:
            errors.append(f"Field '{label}' must be a valid date.")
    elif field_type == "email":
        if not _EMAIL_RE.match(value):
            errors.append(f"Field '{label}' must be a valid email address.")
    elif field_type == "phone":
        if not _PHONE_RE.match(value):
            errors.append(f"Field '{label}' must be a valid phone number.")
    elif field_type in ("dropdown", "radio"):
        if options and value not in options:
            errors.append(f"Invalid option '{value}' for field '{label}'.")
    elif field_type == "checkbox":
        if options:
            invalid = [v for v in split_multi_value(value) if v not in options]
            if invalid:
                errors.append(f"Invalid option(s) {', '.join(invalid)} for field '{label}'.")

    if rules.get("min_length") is not None and len(value) < int(rules["min_length"]):
        errors.append(f"Field '{label}' must be at least {rules['min_length']} characters.")
    if rules.get("max_length") is not None and len(value) > int(rules["max_length"]):
        errors.append(f"Field '{label}' must be at most {rules['max_length']} characters.")
    if rules.get("pattern") and not re.fullmatch(str(rules["pattern"]), value):
        errors.append(rules.get("pattern_message") or f"Field '{label}' has an invalid format.")

    return errors


def applicable_fields(
    db: Session, item: Optional[ServiceItem], template: Optional[ServiceTemplate]
) -> List[CustomFieldDefinition]:
    clauses = []
    if template is not None:
        clauses.append(CustomFieldDefinition.service_template_id == template.id)
    if item is not None:
        clauses.append(CustomFieldDefinition.service_item_id == item.id)
    if not clauses:
        return []
    return (
        db.query(CustomFieldDefinition)
        .filter(or_(*clauses))
        .order_by(CustomFieldDefinition.sort_order, CustomFieldDefinition.id)
        .all()
    )


def validate_custom_field_values(
    db: Session,
    *,
    item: Optional[ServiceItem],
    template: Optional[ServiceTemplate],
    values: Dict[int, Any],
) -> List[Tuple[CustomFieldDefinition, str]]:
    """Check submitted values against the template's and item's field definitions.

    ``values`` maps field definition id to the raw submitted value. Returns the
    (definition, stored string) pairs to persist, or raises ValidationFailed
    with every problem found.
    """
    fields = applicable_fields(db, item, template)
    owner_name = template.name if template is not None else (item.name if item is not None else "")

    if values and not fields:
        raise ValidationFailed("Custom field values were provided but the selected service has no custom fields.")

    by_id = {f.id: f for f in fields}
    errors: List[str] = []
    accepted: List[Tuple[CustomFieldDefinition, str]] = []

    for field_id, raw in values.items():
        field = by_id.get(int(field_id))
        if field is None:
            errors.append(f"Field {field_id} does not belong to template {owner_name}.")
            continue
        if raw is None:
            continue
        value = stringify_value(raw)
        if not value:
            continue
        errors.extend(
            check_value(
                label=field.field_label,
                field_type=field.field_type,
                value=value,
                options=[str(o) for o in (field.options or [])],
                rules=field.validation_rules,
            )
        )
        accepted.append((field, value))

    provided = {f.id for f, _ in accepted}
    missing = [f.field_label for f in fields if f.is_required and f.id not in provided]
    if missing:
        errors.append(f"Missing required fields for template {owner_name}: {', '.join(missing)}.")

    if errors:
        raise ValidationFailed(errors[0] if len(errors) == 1 else "Custom field validation failed.", errors)
    return accepted
