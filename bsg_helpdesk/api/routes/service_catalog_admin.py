from typing import Any, Dict, List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from bsg_helpdesk.api.dependencies import get_db
from bsg_helpdesk.api.security import require_admin_or_manager
from bsg_helpdesk.models.service_catalog import ServiceCatalog
from bsg_helpdesk.models.user import User
from bsg_helpdesk.schemas.catalog_schema import (
    CatalogAdminResponse,
    CatalogCreate,
    CatalogResponse,
    CatalogUpdate,
    FieldCreate,
    FieldResponse,
    FieldUpdate,
    ItemCreate,
    ItemResponse,
    ItemUpdate,
    TemplateCreate,
    TemplateResponse,
    TemplateUpdate,
)
from bsg_helpdesk.services import catalog_service

router = APIRouter()


def _with_statistics(db: Session, catalog: ServiceCatalog) -> CatalogAdminResponse:
    return CatalogAdminResponse(
        **CatalogResponse.model_validate(catalog).model_dump(),
        department_name=catalog.department.name if catalog.department else None,
        statistics=catalog_service.catalog_statistics(db, catalog),
    )


# ----------------------------------
# Catalogs
# ----------------------------------

@router.get("/catalogs", response_model=List[CatalogAdminResponse])
def list_catalogs(
    include_inactive: bool = False,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin_or_manager),
):
    return [_with_statistics(db, c) for c in catalog_service.all_catalogs(db, include_inactive)]


@router.get("/catalogs/{catalog_id}", response_model=CatalogAdminResponse)
def get_catalog(catalog_id: int, db: Session = Depends(get_db), admin: User = Depends(require_admin_or_manager)):
    return _with_statistics(db, catalog_service.get_catalog(db, catalog_id, active_only=False))


@router.post("/catalogs", response_model=CatalogResponse, status_code=201)
def create_catalog(
    request: CatalogCreate,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin_or_manager),
):
    return catalog_service.create_catalog(db, request)


@router.put("/catalogs/{catalog_id}", response_model=CatalogResponse)
def update_catalog(
    catalog_id: int,
    request: CatalogUpdate,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin_or_manager),
):
    return catalog_service.update_catalog(db, catalog_id, request.model_dump(exclude_unset=True))


@router.delete("/catalogs/{catalog_id}")
def delete_catalog(catalog_id: int, db: Session = Depends(get_db), admin: User = Depends(require_admin_or_manager)):
    catalog_service.deactivate_catalog(db, catalog_id)
    return {"message": "Service catalog deactivated successfully"}


# ----------------------------------
# Items
# ----------------------------------

@router.get("/catalogs/{catalog_id}/items", response_model=List[ItemResponse])
def list_items(catalog_id: int, db: Session = Depends(get_db), admin: User = Depends(require_admin_or_manager)):
    return catalog_service.items_for_catalog(db, catalog_id)


@router.post("/items", response_model=ItemResponse, status_code=201)
def create_item(request: ItemCreate, db: Session = Depends(get_db), admin: User = Depends(require_admin_or_manager)):
    return catalog_service.create_item(db, request)


@router.put("/items/{item_id}", response_model=ItemResponse)
def update_item(
    item_id: int,
    request: ItemUpdate,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin_or_manager),
):
    return catalog_service.update_item(db, item_id, request.model_dump(exclude_unset=True))


@router.delete("/items/{item_id}")
def delete_item(item_id: int, db: Session = Depends(get_db), admin: User = Depends(require_admin_or_manager)):
    catalog_service.deactivate_item(db, item_id)
    return {"message": "Service item deactivated successfully"}


@router.get("/items/{item_id}/custom-fields", response_model=List[FieldResponse])
def list_item_fields(item_id: int, db: Session = Depends(get_db), admin: User = Depends(require_admin_or_manager)):
    return catalog_service.fields_for_item(db, item_id)


# ----------------------------------
# Templates
# ----------------------------------

@router.get("/items/{item_id}/templates", response_model=List[TemplateResponse])
def list_templates(item_id: int, db: Session = Depends(get_db), admin: User = Depends(require_admin_or_manager)):
    return catalog_service.templates_for_item(db, item_id)


@router.post("/templates", response_model=TemplateResponse, status_code=201)
def create_template(
    request: TemplateCreate,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin_or_manager),
):
    return catalog_service.create_template(db, request)


@router.put("/templates/{template_id}", response_model=TemplateResponse)
def update_template(
    template_id: int,
    request: TemplateUpdate,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin_or_manager),
):
    return catalog_service.update_template(db, template_id, request.model_dump(exclude_unset=True))


@router.delete("/templates/{template_id}")
def delete_template(template_id: int, db: Session = Depends(get_db), admin: User = Depends(require_admin_or_manager)):
    catalog_service.hide_template(db, template_id)
    return {"message": "Service template hidden successfully"}


# ----------------------------------
# Custom fields
# ----------------------------------

@router.get("/templates/{template_id}/fields", response_model=List[FieldResponse])
def list_template_fields(
    template_id: int,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin_or_manager),
):
    return catalog_service.fields_for_template(db, template_id)


@router.post("/fields", response_model=FieldResponse, status_code=201)
def create_field(request: FieldCreate, db: Session = Depends(get_db), admin: User = Depends(require_admin_or_manager)):
    return catalog_service.create_field(db, request)


@router.put("/fields/{field_id}", response_model=FieldResponse)
def update_field(
    field_id: int,
    request: FieldUpdate,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin_or_manager),
):
    return catalog_service.update_field(db, field_id, request.model_dump(exclude_unset=True))


@router.delete("/fields/{field_id}")
def delete_field(field_id: int, db: Session = Depends(get_db), admin: User = Depends(require_admin_or_manager)):
    catalog_service.delete_field(db, field_id)
    return {"message": "Field deleted successfully"}


@router.get("/overview")
def overview(db: Session = Depends(get_db), admin: User = Depends(require_admin_or_manager)) -> Dict[str, Any]:
    return catalog_service.overview(db)
