from typing import List

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from bsg_helpdesk.api.dependencies import get_db
from bsg_helpdesk.api.security import get_current_user
from bsg_helpdesk.models.user import User
from bsg_helpdesk.schemas.catalog_schema import (
    CatalogSummary,
    ItemResponse,
    SearchResult,
    ServiceDetailResponse,
    ServiceSummary,
)
from bsg_helpdesk.schemas.ticket_schema import ServiceTicketCreate, ServiceTicketCreatedResponse
from bsg_helpdesk.services import catalog_service, ticket_service

router = APIRouter()


@router.get("/categories", response_model=List[CatalogSummary])
def list_categories(db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return [
        CatalogSummary(
            id=catalog.id,
            name=catalog.name,
            description=catalog.description,
            department_id=catalog.department_id,
            department_name=catalog.department.name if catalog.department else None,
            service_count=count,
        )
        for catalog, count in catalog_service.list_catalogs(db)
    ]


@router.get("/category/{catalog_id}/services", response_model=List[ServiceSummary])
def list_services(catalog_id: int, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return [
        ServiceSummary(**ItemResponse.model_validate(item).model_dump(), template_count=count)
        for item, count in catalog_service.list_services(db, catalog_id)
    ]


@router.get("/service/{item_id}/template", response_model=ServiceDetailResponse)
def service_template(item_id: int, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return catalog_service.service_detail(db, item_id)


@router.post("/create-ticket", response_model=ServiceTicketCreatedResponse, status_code=201)
def create_ticket(
    request: ServiceTicketCreate,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    ticket, routing = ticket_service.create_service_ticket(db, user, request)
    return {"ticket": ticket, "routing": routing}


@router.get("/search", response_model=List[SearchResult])
def search(
    q: str = Query(..., min_length=1),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return [
        SearchResult(
            template_id=t.id,
            template_name=t.name,
            template_description=t.description,
            item_id=t.item.id,
            item_name=t.item.name,
            catalog_id=t.item.catalog.id,
            catalog_name=t.item.catalog.name,
        )
        for t in catalog_service.search_services(db, q)
    ]
