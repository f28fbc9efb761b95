from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import func as sqlfunc, or_
from sqlalchemy.orm import Session, joinedload

from bsg_helpdesk.core.errors import NotFound, ValidationFailed
from bsg_helpdesk.models.organization import Department
from bsg_helpdesk.models.service_catalog import (
    CustomFieldDefinition,
    ServiceCatalog,
    ServiceItem,
    ServiceTemplate,
)
from bsg_helpdesk.models.ticket import Ticket

SEARCH_LIMIT = 30


# ----------------------------------
# Browsing
# ----------------------------------

def _active(model):
    return model.is_active == True  # noqa: E712


def list_catalogs(db: Session) -> List[Tuple[ServiceCatalog, int]]:
    counts = dict(
        db.query(ServiceItem.catalog_id, sqlfunc.count(ServiceItem.id))
        .filter(_active(ServiceItem))
        .group_by(ServiceItem.catalog_id)
        .all()
    )
    catalogs = (
        db.query(ServiceCatalog)
        .options(joinedload(ServiceCatalog.department))
        .filter(_active(ServiceCatalog))
        .order_by(ServiceCatalog.name)
        .all()
    )
    return [(c, counts.get(c.id, 0)) for c in catalogs]


def get_catalog(db: Session, catalog_id: int, *, active_only: bool = True) -> ServiceCatalog:
    q = db.query(ServiceCatalog).filter(ServiceCatalog.id == catalog_id)
    if active_only:
        q = q.filter(_active(ServiceCatalog))
    catalog = q.first()
    if not catalog:
        raise NotFound("Service catalog not found")
    return catalog


def list_services(db: Session, catalog_id: int) -> List[Tuple[ServiceItem, int]]:
    get_catalog(db, catalog_id)
    counts = dict(
        db.query(ServiceTemplate.service_item_id, sqlfunc.count(ServiceTemplate.id))
        .filter(ServiceTemplate.is_visible == True)  # noqa: E712
        .group_by(ServiceTemplate.service_item_id)
        .all()
    )
    items = (
        db.query(ServiceItem)
        .filter(ServiceItem.catalog_id == catalog_id, _active(ServiceItem))
        .order_by(ServiceItem.sort_order, ServiceItem.name)
        .all()
    )
    return [(i, counts.get(i.id, 0)) for i in items]


def get_item(db: Session, item_id: int, *, active_only: bool = True) -> ServiceItem:
    q = db.query(ServiceItem).options(joinedload(ServiceItem.catalog)).filter(ServiceItem.id == item_id)
    if active_only:
        q = q.filter(_active(ServiceItem))
    item = q.first()
    if not item:
        raise NotFound("Service item not found")
    return item


def service_detail(db: Session, item_id: int) -> Dict[str, Any]:
    item = get_item(db, item_id)
    templates = (
        db.query(ServiceTemplate)
        .filter(ServiceTemplate.service_item_id == item.id, ServiceTemplate.is_visible == True)  # noqa: E712
        .order_by(ServiceTemplate.sort_order, ServiceTemplate.name)
        .all()
    )
    return {"item": item, "templates": templates, "item_fields": list(item.fields)}


def search_services(db: Session, query: str) -> List[ServiceTemplate]:
    """Visible templates where every term matches the template, its item or its catalog."""
    terms = [t for t in (query or "").split() if t]
    if not terms:
        return []
    q = (
        db.query(ServiceTemplate)
        .join(ServiceItem, ServiceItem.id == ServiceTemplate.service_item_id)
        .join(ServiceCatalog, ServiceCatalog.id == ServiceItem.catalog_id)
        .filter(
            ServiceTemplate.is_visible == True,  # noqa: E712
            _active(ServiceItem),
            _active(ServiceCatalog),
        )
    )
    for term in terms:
        pattern = f"%{term}%"
        q = q.filter(
            or_(
                ServiceTemplate.name.ilike(pattern),
                ServiceTemplate.description.ilike(pattern),
                ServiceItem.name.ilike(pattern),
                ServiceItem.description.ilike(pattern),
                ServiceCatalog.name.ilike(pattern),
            )
        )
    return (
        q.options(joinedload(ServiceTemplate.item).joinedload(ServiceItem.catalog))
        .order_by(ServiceTemplate.name)
        .limit(SEARCH_LIMIT)
        .all()
    )


# ----------------------------------
# Administration
# ----------------------------------

def _check_department(db: Session, department_id: int) -> Department:
    department = db.query(Department).filter(Department.id == department_id).first()
    if not department:
        raise ValidationFailed("Invalid department.")
    return department


def _check_unique_catalog_name(db: Session, name: str, department_id: int, exclude_id: Optional[int] = None) -> None:
    q = db.query(ServiceCatalog.id).filter(
        sqlfunc.lower(ServiceCatalog.name) == name.strip().lower(),
        ServiceCatalog.department_id == department_id,
        _active(ServiceCatalog),
    )
    if exclude_id is not None:
        q = q.filter(ServiceCatalog.id != exclude_id)
    if q.first():
        raise ValidationFailed("A service catalog with this name already exists in the department.")


def catalog_statistics(db: Session, catalog: ServiceCatalog) -> Dict[str, int]:
    item_ids = [i for (i,) in db.query(ServiceItem.id).filter(ServiceItem.catalog_id == catalog.id).all()]
    templates = 0
    tickets = 0
    if item_ids:
        templates = (
            db.query(sqlfunc.count(ServiceTemplate.id)).filter(ServiceTemplate.service_item_id.in_(item_ids)).scalar()
            or 0
        )
        tickets = (
            db.query(sqlfunc.count(Ticket.id))
            .filter(Ticket.service_item_id.in_(item_ids), Ticket.is_deleted == False)  # noqa: E712
            .scalar()
            or 0
        )
    return {"item_count": len(item_ids), "template_count": templates, "ticket_count": tickets}


def all_catalogs(db: Session, include_inactive: bool = False) -> List[ServiceCatalog]:
    q = db.query(ServiceCatalog).options(joinedload(ServiceCatalog.department))
    if not include_inactive:
        q = q.filter(_active(ServiceCatalog))
    return q.order_by(ServiceCatalog.name).all()


def create_catalog(db: Session, data) -> ServiceCatalog:
    if not (data.name or "").strip():
        raise ValidationFailed("Catalog name is required.")
    _check_department(db, data.department_id)
    _check_unique_catalog_name(db, data.name, data.department_id)
    catalog = ServiceCatalog(name=data.name.strip(), description=data.description, department_id=data.department_id)
    db.add(catalog)
    db.commit()
    db.refresh(catalog)
    return catalog


def update_catalog(db: Session, catalog_id: int, changes: Dict[str, Any]) -> ServiceCatalog:
    catalog = get_catalog(db, catalog_id, active_only=False)
    department_id = changes.get("department_id", catalog.department_id)
    if "department_id" in changes:
        _check_department(db, department_id)
    if "name" in changes or "department_id" in changes:
        _check_unique_catalog_name(db, changes.get("name", catalog.name), department_id, exclude_id=catalog.id)
    for key, value in changes.items():
        setattr(catalog, key, value)
    db.commit()
    db.refresh(catalog)
    return catalog


def deactivate_catalog(db: Session, catalog_id: int) -> None:
    catalog = get_catalog(db, catalog_id, active_only=False)
    catalog.is_active = False
    for item in catalog.items:
        item.is_active = False
    db.commit()


def items_for_catalog(db: Session, catalog_id: int) -> List[ServiceItem]:
    get_catalog(db, catalog_id, active_only=False)
    return (
        db.query(ServiceItem)
        .filter(ServiceItem.catalog_id == catalog_id)
        .order_by(ServiceItem.sort_order, ServiceItem.name)
        .all()
    )


def create_item(db: Session, data) -> ServiceItem:
    get_catalog(db, data.catalog_id)
    item = ServiceItem(**data.model_dump())
    db.add(item)
    db.commit()
    db.refresh(item)
    return item


def update_item(db: Session, item_id: int, changes: Dict[str, Any]) -> ServiceItem:
    item = get_item(db, item_id, active_only=False)
    if "catalog_id" in changes:
        get_catalog(db, changes["catalog_id"])
    for key, value in changes.items():
        setattr(item, key, value)
    db.commit()
    db.refresh(item)
    return item


def deactivate_item(db: Session, item_id: int) -> None:
    item = get_item(db, item_id, active_only=False)
    item.is_active = False
    db.commit()


def get_template(db: Session, template_id: int) -> ServiceTemplate:
    template = db.query(ServiceTemplate).filter(ServiceTemplate.id == template_id).first()
    if not template:
        raise NotFound("Service template not found")
    return template


def templates_for_item(db: Session, item_id: int) -> List[ServiceTemplate]:
    get_item(db, item_id, active_only=False)
    return (
        db.query(ServiceTemplate)
        .filter(ServiceTemplate.service_item_id == item_id)
        .order_by(ServiceTemplate.sort_order, ServiceTemplate.name)
        .all()
    )


def create_template(db: Session, data) -> ServiceTemplate:
    get_item(db, data.service_item_id)
    template = ServiceTemplate(**data.model_dump())
    db.add(template)
    db.commit()
    db.refresh(template)
    return template


def update_template(db: Session, template_id: int, changes: Dict[str, Any]) -> ServiceTemplate:
    template = get_template(db, template_id)
    if "service_item_id" in changes:
        get_item(db, changes["service_item_id"])
    for key, value in changes.items():
        setattr(template, key, value)
    db.commit()
    db.refresh(template)
    return template


def hide_template(db: Session, template_id: int) -> None:
    template = get_template(db, template_id)
    template.is_visible = False
    db.commit()


def _check_field_options(field_type: str, options: Optional[List[str]]) -> None:
    if field_type in ("dropdown", "radio") and not options:
        raise ValidationFailed(f"Fields of type {field_type} need at least one option.")


def fields_for_template(db: Session, template_id: int) -> List[CustomFieldDefinition]:
    get_template(db, template_id)
    return (
        db.query(CustomFieldDefinition)
        .filter(CustomFieldDefinition.service_template_id == template_id)
        .order_by(CustomFieldDefinition.sort_order, CustomFieldDefinition.id)
        .all()
    )


def fields_for_item(db: Session, item_id: int) -> List[CustomFieldDefinition]:
    get_item(db, item_id, active_only=False)
    return (
        db.query(CustomFieldDefinition)
        .filter(CustomFieldDefinition.service_item_id == item_id)
        .order_by(CustomFieldDefinition.sort_order, CustomFieldDefinition.id)
        .all()
    )


def create_field(db: Session, data) -> CustomFieldDefinition:
    if (data.service_template_id is None) == (data.service_item_id is None):
        raise ValidationFailed("A field belongs to exactly one template or item.")
    if data.service_template_id is not None:
        get_template(db, data.service_template_id)
    else:
        get_item(db, data.service_item_id, active_only=False)
    _check_field_options(data.field_type, data.options)
    field = CustomFieldDefinition(**data.model_dump())
    db.add(field)
    db.commit()
    db.refresh(field)
    return field


def get_field(db: Session, field_id: int) -> CustomFieldDefinition:
    field = db.query(CustomFieldDefinition).filter(CustomFieldDefinition.id == field_id).first()
    if not field:
        raise NotFound("Field not found")
    return field


def update_field(db: Session, field_id: int, changes: Dict[str, Any]) -> CustomFieldDefinition:
    field = get_field(db, field_id)
    _check_field_options(changes.get("field_type", field.field_type), changes.get("options", field.options))
    for key, value in changes.items():
        setattr(field, key, value)
    db.commit()
    db.refresh(field)
    return field


def delete_field(db: Session, field_id: int) -> None:
    field = get_field(db, field_id)
    db.delete(field)
    db.commit()


def overview(db: Session) -> Dict[str, Any]:
    def count(q) -> int:
        return q.scalar() or 0

    department_rows = (
        db.query(Department.id, Department.name, sqlfunc.count(ServiceCatalog.id))
        .outerjoin(
            ServiceCatalog,
            (ServiceCatalog.department_id == Department.id) & (ServiceCatalog.is_active == True),  # noqa: E712
        )
        .group_by(Department.id, Department.name)
        .order_by(Department.name)
        .all()
    )
    top_templates = (
        db.query(ServiceTemplate.id, ServiceTemplate.name, sqlfunc.count(Ticket.id).label("tickets"))
        .join(Ticket, Ticket.service_template_id == ServiceTemplate.id)
        .filter(Ticket.is_deleted == False)  # noqa: E712
        .group_by(ServiceTemplate.id, ServiceTemplate.name)
        .order_by(sqlfunc.count(Ticket.id).desc())
        .limit(10)
        .all()
    )
    return {
        "catalogs": count(db.query(sqlfunc.count(ServiceCatalog.id)).filter(_active(ServiceCatalog))),
        "items": count(db.query(sqlfunc.count(ServiceItem.id)).filter(_active(ServiceItem))),
        "templates": count(db.query(sqlfunc.count(ServiceTemplate.id))),
        "visible_templates": count(
            db.query(sqlfunc.count(ServiceTemplate.id)).filter(ServiceTemplate.is_visible == True)  # noqa: E712
        ),
        "fields": count(db.query(sqlfunc.count(CustomFieldDefinition.id))),
        "departments": [
            {"id": did, "name": name, "catalog_count": catalogs} for did, name, catalogs in department_rows
        ],
        "top_templates": [{"id": tid, "name": name, "ticket_count": n} for tid, name, n in top_templates],
    }
