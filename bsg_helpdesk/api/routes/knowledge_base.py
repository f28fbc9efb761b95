from typing import Any, Dict, List, Literal, Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from bsg_helpdesk.api.dependencies import get_db
from bsg_helpdesk.api.security import get_current_user, get_optional_user, require_staff
from bsg_helpdesk.models.user import User
from bsg_helpdesk.schemas.knowledge_schema import (
    ArticleCreate,
    ArticleResponse,
    ArticleSearchResponse,
    ArticleUpdate,
    CategoryCreate,
    CategoryNode,
    CategoryResponse,
    CategoryWithArticles,
    FeedbackRequest,
    LinkRequest,
    LinkResponse,
    SuggestRequest,
)
from bsg_helpdesk.services import knowledge_service

router = APIRouter()


def _client_ip(request: Request) -> Optional[str]:
    return request.client.host if request.client else None


# ----------------------------------
# Articles
# ----------------------------------

@router.get("/articles", response_model=ArticleSearchResponse)
def search_articles(
    query: Optional[str] = None,
    category_id: Optional[int] = None,
    tags: Optional[List[str]] = Query(None),
    status: Literal["draft", "published", "archived"] = "published",
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    sort_by: Literal["created", "updated", "views", "helpful"] = "created",
    order: Literal["asc", "desc"] = "desc",
    db: Session = Depends(get_db),
    user: Optional[User] = Depends(get_optional_user),
):
    knowledge_service.check_search_status(user, status)
    return knowledge_service.search_articles(
        db,
        query=query,
        category_id=category_id,
        tags=tags,
        status=status,
        limit=limit,
        offset=offset,
        sort_by=sort_by,
        order=order,
    )


@router.get("/articles/popular", response_model=List[ArticleResponse])
def popular_articles(limit: int = Query(10, ge=1, le=50), db: Session = Depends(get_db)):
    return knowledge_service.popular_articles(db, limit)


@router.get("/articles/recent", response_model=List[ArticleResponse])
def recent_articles(limit: int = Query(10, ge=1, le=50), db: Session = Depends(get_db)):
    return knowledge_service.recent_articles(db, limit)


@router.post("/articles", response_model=ArticleResponse, status_code=201)
def create_article(request: ArticleCreate, db: Session = Depends(get_db), user: User = Depends(require_staff)):
    return knowledge_service.create_article(db, user, request)


@router.get("/articles/{article_id}", response_model=ArticleResponse)
def get_article(
    article_id: int,
    request: Request,
    db: Session = Depends(get_db),
    user: Optional[User] = Depends(get_optional_user),
):
    return knowledge_service.view_article(
        db,
        article_id,
        user=user,
        ip_address=_client_ip(request),
        user_agent=request.headers.get("user-agent"),
    )


@router.put("/articles/{article_id}", response_model=ArticleResponse)
def update_article(
    article_id: int,
    request: ArticleUpdate,
    db: Session = Depends(get_db),
    user: User = Depends(require_staff),
):
    return knowledge_service.update_article(db, user, article_id, request.model_dump(exclude_unset=True))


@router.post("/articles/{article_id}/publish", response_model=ArticleResponse)
def publish_article(article_id: int, db: Session = Depends(get_db), user: User = Depends(require_staff)):
    return knowledge_service.publish_article(db, user, article_id)


@router.post("/articles/{article_id}/archive", response_model=ArticleResponse)
def archive_article(article_id: int, db: Session = Depends(get_db), user: User = Depends(require_staff)):
    return knowledge_service.archive_article(db, user, article_id)


@router.post("/articles/{article_id}/feedback", response_model=ArticleResponse)
def submit_feedback(
    article_id: int,
    body: FeedbackRequest,
    request: Request,
    db: Session = Depends(get_db),
    user: Optional[User] = Depends(get_optional_user),
):
    return knowledge_service.submit_feedback(
        db,
        article_id,
        is_helpful=body.is_helpful,
        comment=body.comment,
        user=user,
        ip_address=_client_ip(request),
    )


# ----------------------------------
# Ticket links and suggestions
# ----------------------------------

@router.post("/links", response_model=LinkResponse, status_code=201)
def link_article(request: LinkRequest, db: Session = Depends(get_db), user: User = Depends(require_staff)):
    return knowledge_service.link_article_to_ticket(db, user, request.article_id, request.ticket_id, request.link_type)


@router.get("/tickets/{ticket_id}/articles", response_model=List[LinkResponse])
def ticket_articles(ticket_id: int, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return knowledge_service.articles_for_ticket(db, ticket_id)


@router.post("/suggestions", response_model=List[ArticleResponse])
def suggest_articles(request: SuggestRequest, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return knowledge_service.suggest_articles_for_ticket(db, request.title, request.description)


# ----------------------------------
# Categories and analytics
# ----------------------------------

@router.get("/categories", response_model=List[CategoryNode])
def list_categories(db: Session = Depends(get_db)):
    return knowledge_service.category_tree(db)


@router.post("/categories", response_model=CategoryResponse, status_code=201)
def create_category(request: CategoryCreate, db: Session = Depends(get_db), user: User = Depends(require_staff)):
    return knowledge_service.create_category(db, request)


@router.get("/categories/{category_id}", response_model=CategoryWithArticles)
def get_category(category_id: int, db: Session = Depends(get_db)):
    return knowledge_service.category_with_articles(db, category_id)


@router.get("/analytics")
def analytics(
    days: int = Query(30, ge=1, le=365),
    db: Session = Depends(get_db),
    user: User = Depends(require_staff),
) -> Dict[str, Any]:
    return knowledge_service.analytics(db, days)
