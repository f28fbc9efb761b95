"""Administration of the shared BSG lookup rows (branches, OLIBS menus, ...)."""
import logging
from typing import Any, Dict, List, Optional, Set

from sqlalchemy import or_
from sqlalchemy.orm import Session

from bsg_helpdesk.core.errors import NotFound, ValidationFailed
from bsg_helpdesk.models.bsg_template import BSGMasterData

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = ("code", "name", "display_name", "parent_id", "extra_data", "sort_order", "is_active")


def list_master_data(
    db: Session,
    data_type: str,
    *,
    parent_id: Optional[int] = None,
    search: Optional[str] = None,
    include_inactive: bool = False,
) -> List[BSGMasterData]:
    q = db.query(BSGMasterData).filter(BSGMasterData.data_type == data_type)
    if not include_inactive:
        q = q.filter(BSGMasterData.is_active == True)  # noqa: E712
    if parent_id is not None:
        q = q.filter(BSGMasterData.parent_id == parent_id)
    if search:
        pattern = f"%{search.strip()}%"
        q = q.filter(or_(BSGMasterData.name.ilike(pattern), BSGMasterData.code.ilike(pattern)))
    return q.order_by(BSGMasterData.sort_order, BSGMasterData.name).all()


def get_entity(db: Session, data_type: str, entity_id: int) -> BSGMasterData:
    entity = (
        db.query(BSGMasterData)
        .filter(BSGMasterData.id == entity_id, BSGMasterData.data_type == data_type)
        .first()
    )
    if not entity:
        raise NotFound("Master data entity not found")
    return entity


def _code_taken(db: Session, data_type: str, code: str, exclude_id: Optional[int] = None) -> bool:
    q = db.query(BSGMasterData.id).filter(BSGMasterData.data_type == data_type, BSGMasterData.code == code)
    if exclude_id is not None:
        q = q.filter(BSGMasterData.id != exclude_id)
    return q.first() is not None


def _check_parent(db: Session, data_type: str, parent_id: int, entity_id: Optional[int] = None) -> None:
    """The parent must be a row of the same type and must not sit below the entity itself."""
    current: Optional[int] = parent_id
    seen: Set[int] = set()
    while current is not None and current not in seen:
        if current == entity_id:
            raise ValidationFailed("An entity cannot be its own ancestor.")
        seen.add(current)
        row = (
            db.query(BSGMasterData.id, BSGMasterData.parent_id)
            .filter(BSGMasterData.id == current, BSGMasterData.data_type == data_type)
            .first()
        )
        if not row:
            raise ValidationFailed(f"Parent entity {parent_id} not found for type '{data_type}'.")
        current = row.parent_id


def create_entity(db: Session, data_type: str, data: Dict[str, Any], *, commit: bool = True) -> BSGMasterData:
    code = data.get("code")
    if code and _code_taken(db, data_type, code):
        raise ValidationFailed(f"Master data entity with code '{code}' already exists for type '{data_type}'")
    if data.get("parent_id") is not None:
        _check_parent(db, data_type, data["parent_id"])

    entity = BSGMasterData(data_type=data_type, **{k: v for k, v in data.items() if k in EDITABLE_FIELDS})
    db.add(entity)
    if commit:
        db.commit()
        db.refresh(entity)
        logger.info("Master data %s/%s created", data_type, entity.code or entity.id)
    else:
        db.flush()
    return entity


def update_entity(db: Session, data_type: str, entity_id: int, changes: Dict[str, Any]) -> BSGMasterData:
    entity = get_entity(db, data_type, entity_id)
    code = changes.get("code")
    if code and code != entity.code and _code_taken(db, data_type, code, exclude_id=entity.id):
        raise ValidationFailed(f"Master data entity with code '{code}' already exists for type '{data_type}'")
    if changes.get("parent_id") is not None:
        _check_parent(db, data_type, changes["parent_id"], entity.id)
    for key, value in changes.items():
        if key in EDITABLE_FIELDS:
            setattr(entity, key, value)
    db.commit()
    db.refresh(entity)
    return entity


def deactivate_entity(db: Session, data_type: str, entity_id: int) -> BSGMasterData:
    """Soft delete; ticket values that point at the row keep resolving."""
    entity = get_entity(db, data_type, entity_id)
    entity.is_active = False
    db.commit()
    db.refresh(entity)
    logger.info("Master data %s/%s deactivated", data_type, entity.code or entity.id)
    return entity


def _node(entity: BSGMasterData, children_of: Dict[Optional[int], List[BSGMasterData]]) -> Dict[str, Any]:
    return {
        "id": entity.id,
        "data_type": entity.data_type,
        "code": entity.code,
        "name": entity.name,
        "display_name": entity.display_name,
        "parent_id": entity.parent_id,
        "extra_data": entity.extra_data,
        "sort_order": entity.sort_order,
        "is_active": entity.is_active,
        "children": [_node(child, children_of) for child in children_of.get(entity.id, [])],
    }


def hierarchy(db: Session, data_type: str) -> List[Dict[str, Any]]:
    """Active rows of a type as a tree; children of inactive rows are dropped with them."""
    rows = list_master_data(db, data_type)
    children_of: Dict[Optional[int], List[BSGMasterData]] = {}
    for row in rows:
        children_of.setdefault(row.parent_id, []).append(row)
    return [_node(root, children_of) for root in children_of.get(None, [])]


def bulk_import(db: Session, data_type: str, entities: List[Dict[str, Any]]) -> Dict[str, Any]:
    """Create many rows at once.

    Bad entries are reported per index and skipped; the valid ones are
    committed together.
    """
    if not entities:
        raise ValidationFailed("Entities array is required and must not be empty")

    created: List[BSGMasterData] = []
    errors: List[Dict[str, Any]] = []
    batch_codes: Set[str] = set()
    for index, raw in enumerate(entities):
        name = raw.get("name")
        code = str(raw["code"]) if raw.get("code") is not None else None
        if not isinstance(name, str) or not name.strip():
            errors.append({"index": index, "code": code, "error": "Name is required."})
            continue
        if code and code in batch_codes:
            errors.append({"index": index, "code": code, "error": f"Duplicate code '{code}' in import."})
            continue
        data = {
            "code": code,
            "name": name.strip(),
            "display_name": raw.get("display_name"),
            "parent_id": raw.get("parent_id"),
            "extra_data": raw.get("metadata"),
            "sort_order": raw.get("sort_order") or 0,
        }
        try:
            created.append(create_entity(db, data_type, data, commit=False))
        except ValidationFailed as exc:
            errors.append({"index": index, "code": code, "error": exc.message})
            continue
        if code:
            batch_codes.add(code)

    db.commit()
    for entity in created:
        db.refresh(entity)
    logger.info("Master data import for %s: %d created, %d failed", data_type, len(created), len(errors))
    return {
        "created": created,
        "errors": errors,
        "summary": {"total": len(entities), "created": len(created), "failed": len(errors)},
    }
