from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from bsg_helpdesk.api.dependencies import get_db
from bsg_helpdesk.api.security import get_current_user, require_admin, require_admin_or_manager
from bsg_helpdesk.models.user import User
from bsg_helpdesk.schemas.bsg_template_schema import (
    BSGCategoryResponse,
    BSGTemplateListResponse,
    BSGTemplateResponse,
    BulkImportRequest,
    BulkImportResponse,
    MasterDataCreate,
    MasterDataNode,
    MasterDataResponse,
    MasterDataUpdate,
    UsageRequest,
    UsageResponse,
    ValidateRequest,
    ValidateResponse,
)
from bsg_helpdesk.services import bsg_template_service, master_data_service

router = APIRouter()


@router.get("/categories", response_model=List[BSGCategoryResponse])
def list_categories(db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return [
        BSGCategoryResponse.model_validate(category).model_copy(update={"template_count": count})
        for category, count in bsg_template_service.list_categories(db)
    ]


@router.get("/templates", response_model=BSGTemplateListResponse)
def list_templates(
    category_id: Optional[int] = None,
    search: Optional[str] = None,
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    rows, total = bsg_template_service.search_templates(
        db, category_id=category_id, search=search, limit=limit, offset=offset
    )
    return {"success": True, "data": rows, "total": total}


@router.get("/templates/{template_id}", response_model=BSGTemplateResponse)
def get_template(template_id: int, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return bsg_template_service.get_template(db, template_id)


@router.get("/templates/{template_id}/fields")
def get_template_fields(
    template_id: int, db: Session = Depends(get_db), user: User = Depends(get_current_user)
) -> Dict[str, Any]:
    fields = bsg_template_service.describe_template_fields(db, template_id)
    return {"success": True, "data": fields}


# ----------------------------------
# Master data
# ----------------------------------

@router.get("/master-data/{data_type}", response_model=List[MasterDataResponse])
def get_master_data(
    data_type: str,
    parent_id: Optional[int] = None,
    search: Optional[str] = None,
    include_inactive: bool = False,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return master_data_service.list_master_data(
        db, data_type, parent_id=parent_id, search=search, include_inactive=include_inactive
    )


@router.get("/master-data/{data_type}/hierarchy", response_model=List[MasterDataNode])
def get_master_data_hierarchy(data_type: str, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return master_data_service.hierarchy(db, data_type)


@router.post("/master-data/{data_type}", response_model=MasterDataResponse, status_code=201)
def create_master_data(
    data_type: str,
    request: MasterDataCreate,
    db: Session = Depends(get_db),
    user: User = Depends(require_admin_or_manager),
):
    return master_data_service.create_entity(db, data_type, request.model_dump())


@router.put("/master-data/{data_type}/{entity_id}", response_model=MasterDataResponse)
def update_master_data(
    data_type: str,
    entity_id: int,
    request: MasterDataUpdate,
    db: Session = Depends(get_db),
    user: User = Depends(require_admin_or_manager),
):
    return master_data_service.update_entity(db, data_type, entity_id, request.model_dump(exclude_unset=True))


@router.delete("/master-data/{data_type}/{entity_id}", response_model=MasterDataResponse)
def deactivate_master_data(
    data_type: str,
    entity_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(require_admin),
):
    return master_data_service.deactivate_entity(db, data_type, entity_id)


@router.post("/master-data/{data_type}/bulk-import", response_model=BulkImportResponse, status_code=201)
def bulk_import_master_data(
    data_type: str,
    request: BulkImportRequest,
    db: Session = Depends(get_db),
    user: User = Depends(require_admin),
):
    return master_data_service.bulk_import(db, data_type, request.entities)


# ----------------------------------
# Usage and validation
# ----------------------------------

@router.post("/templates/{template_id}/usage", response_model=UsageResponse)
def track_usage(
    template_id: int,
    request: UsageRequest,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    template = bsg_template_service.get_template(db, template_id)
    bsg_template_service.log_usage(
        db,
        template,
        action_type=request.action_type,
        user=user,
        session_id=request.session_id,
        completion_time_ms=request.completion_time_ms,
    )
    db.refresh(template)
    return UsageResponse(usage_count=template.usage_count, popularity_score=template.popularity_score)


@router.post("/templates/{template_id}/validate", response_model=ValidateResponse)
def validate_template_values(
    template_id: int,
    request: ValidateRequest,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    template = bsg_template_service.get_template(db, template_id)
    cleaned, errors = bsg_template_service.validate_submission(db, template, request.values)
    return ValidateResponse(valid=not errors, errors=errors, values=cleaned)
