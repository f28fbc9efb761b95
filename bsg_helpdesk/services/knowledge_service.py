import datetime as dt
import logging
import re
from typing import Any, Dict, List, Optional

from rank_bm25 import BM25Okapi
from sqlalchemy import func as sqlfunc, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from bsg_helpdesk.core.clock import utcnow
from bsg_helpdesk.core.errors import Conflict, NotFound, PermissionDenied, ValidationFailed
from bsg_helpdesk.models.knowledge import (
    KnowledgeArticle,
    KnowledgeArticleFeedback,
    KnowledgeArticleView,
    KnowledgeCategory,
    KnowledgeTicketLink,
)
from bsg_helpdesk.models.user import User
from bsg_helpdesk.services.ticket_workflow import get_ticket

logger = logging.getLogger(__name__)

AUTHOR_ROLES = ("admin", "manager", "technician")

SORT_COLUMNS = {
    "created": KnowledgeArticle.created_at,
    "updated": KnowledgeArticle.updated_at,
    "views": KnowledgeArticle.view_count,
    "helpful": KnowledgeArticle.helpful_count,
}


def is_author_role(user: Optional[User]) -> bool:
    return user is not None and user.role in AUTHOR_ROLES


def check_search_status(user: Optional[User], status: str) -> None:
    if status != "published" and not is_author_role(user):
        raise PermissionDenied("Only staff can browse unpublished articles.")


def _tokenize(text: str) -> list[str]:
    text = (text or "").lower()
    text = re.sub(r"[^\w\s]", " ", text)
    return [t for t in text.split() if t]


def _check_category(db: Session, category_id: Optional[int]) -> None:
    if category_id is None:
        return
    exists = db.query(KnowledgeCategory.id).filter(KnowledgeCategory.id == category_id).first()
    if not exists:
        raise ValidationFailed("Knowledge category not found.")


def _excerpt(content: str, length: int = 200) -> str:
    flat = re.sub(r"\s+", " ", content or "").strip()
    return flat if len(flat) <= length else flat[:length].rstrip() + "..."


def create_article(db: Session, author: User, data) -> KnowledgeArticle:
    _check_category(db, data.category_id)
    article = KnowledgeArticle(
        title=data.title,
        content=data.content,
        excerpt=data.excerpt or _excerpt(data.content),
        category_id=data.category_id,
        tags=list(data.tags or []),
        search_keywords=data.search_keywords,
        status="draft",
        author_id=author.id,
    )
    db.add(article)
    db.commit()
    db.refresh(article)
    return article


def get_article(db: Session, article_id: int) -> KnowledgeArticle:
    article = db.query(KnowledgeArticle).filter(KnowledgeArticle.id == article_id).first()
    if not article:
        raise NotFound("Article not found")
    return article


def update_article(db: Session, editor: User, article_id: int, changes: Dict[str, Any]) -> KnowledgeArticle:
    article = get_article(db, article_id)
    if "category_id" in changes:
        _check_category(db, changes["category_id"])
    for key, value in changes.items():
        if key == "tags":
            value = list(value or [])
        setattr(article, key, value)
    if "content" in changes and "excerpt" not in changes:
        article.excerpt = _excerpt(article.content)
    article.editor_id = editor.id
    db.commit()
    db.refresh(article)
    return article


def publish_article(db: Session, editor: User, article_id: int) -> KnowledgeArticle:
    article = get_article(db, article_id)
    article.status = "published"
    article.published_at = utcnow()
    article.editor_id = editor.id
    db.commit()
    db.refresh(article)
    return article


def archive_article(db: Session, editor: User, article_id: int) -> KnowledgeArticle:
    article = get_article(db, article_id)
    article.status = "archived"
    article.editor_id = editor.id
    db.commit()
    db.refresh(article)
    return article


def view_article(
    db: Session,
    article_id: int,
    *,
    user: Optional[User] = None,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
) -> KnowledgeArticle:
    """Fetch an article; published ones count the view.

    Drafts and archived articles are only shown to authors.
    """
    article = get_article(db, article_id)
    if article.status != "published" and not is_author_role(user):
        raise NotFound("Article not found")
    if article.status == "published":
        db.add(
            KnowledgeArticleView(
                article_id=article.id,
                user_id=user.id if user else None,
                ip_address=ip_address,
                user_agent=(user_agent or "")[:255] or None,
            )
        )
        article.view_count = (article.view_count or 0) + 1
        db.commit()
        db.refresh(article)
    return article


def search_articles(
    db: Session,
    *,
    query: Optional[str] = None,
    category_id: Optional[int] = None,
    tags: Optional[List[str]] = None,
    status: Optional[str] = "published",
    limit: int = 20,
    offset: int = 0,
    sort_by: str = "created",
    order: str = "desc",
) -> Dict[str, Any]:
    q = db.query(KnowledgeArticle)
    if status:
        q = q.filter(KnowledgeArticle.status == status)
    if category_id is not None:
        q = q.filter(KnowledgeArticle.category_id == category_id)
    if query:
        pattern = f"%{query.strip()}%"
        q = q.filter(
            or_(
                KnowledgeArticle.title.ilike(pattern),
                KnowledgeArticle.content.ilike(pattern),
                KnowledgeArticle.search_keywords.ilike(pattern),
                KnowledgeArticle.excerpt.ilike(pattern),
            )
        )
    column = SORT_COLUMNS.get(sort_by, KnowledgeArticle.created_at)
    q = q.order_by(column.asc() if order == "asc" else column.desc(), KnowledgeArticle.id.desc())

    if tags:
        # Tags live in a JSON list; "has every tag" is evaluated in Python to stay portable.
        wanted = {t.lower() for t in tags}
        rows = [a for a in q.all() if wanted.issubset({str(t).lower() for t in (a.tags or [])})]
        total = len(rows)
        articles = rows[offset:offset + limit]
    else:
        total = q.count()
        articles = q.offset(offset).limit(limit).all()

    return {
        "articles": articles,
        "total": total,
        "limit": limit,
        "offset": offset,
        "has_more": offset + len(articles) < total,
    }


def popular_articles(db: Session, limit: int = 10) -> List[KnowledgeArticle]:
    return (
        db.query(KnowledgeArticle)
        .filter(KnowledgeArticle.status == "published")
        .order_by(KnowledgeArticle.view_count.desc(), KnowledgeArticle.helpful_count.desc())
        .limit(limit)
        .all()
    )


def recent_articles(db: Session, limit: int = 10) -> List[KnowledgeArticle]:
    return (
        db.query(KnowledgeArticle)
        .filter(KnowledgeArticle.status == "published")
        .order_by(KnowledgeArticle.published_at.desc(), KnowledgeArticle.id.desc())
        .limit(limit)
        .all()
    )


def submit_feedback(
    db: Session,
    article_id: int,
    *,
    is_helpful: bool,
    comment: Optional[str] = None,
    user: Optional[User] = None,
    ip_address: Optional[str] = None,
) -> KnowledgeArticle:
    article = get_article(db, article_id)
    q = db.query(KnowledgeArticleFeedback).filter(KnowledgeArticleFeedback.article_id == article.id)
    if user is not None:
        q = q.filter(KnowledgeArticleFeedback.user_id == user.id)
    else:
        q = q.filter(KnowledgeArticleFeedback.user_id.is_(None), KnowledgeArticleFeedback.ip_address == ip_address)
    if q.first():
        raise Conflict("Feedback already submitted for this article.")

    db.add(
        KnowledgeArticleFeedback(
            article_id=article.id,
            user_id=user.id if user else None,
            ip_address=ip_address,
            is_helpful=is_helpful,
            comment=comment,
        )
    )
    if is_helpful:
        article.helpful_count = (article.helpful_count or 0) + 1
    else:
        article.not_helpful_count = (article.not_helpful_count or 0) + 1
    db.commit()
    db.refresh(article)
    return article


def link_article_to_ticket(
    db: Session, user: User, article_id: int, ticket_id: int, link_type: str = "related"
) -> KnowledgeTicketLink:
    article = get_article(db, article_id)
    ticket = get_ticket(db, ticket_id)
    link = KnowledgeTicketLink(
        article_id=article.id,
        ticket_id=ticket.id,
        link_type=link_type,
        linked_by_user_id=user.id,
    )
    db.add(link)
    try:
        db.commit()
    except IntegrityError as e:
        db.rollback()
        raise Conflict("Article is already linked to this ticket.") from e
    db.refresh(link)
    return link


def articles_for_ticket(db: Session, ticket_id: int) -> List[KnowledgeTicketLink]:
    get_ticket(db, ticket_id)
    return (
        db.query(KnowledgeTicketLink)
        .filter(KnowledgeTicketLink.ticket_id == ticket_id)
        .order_by(KnowledgeTicketLink.id)
        .all()
    )


def create_category(db: Session, data) -> KnowledgeCategory:
    if data.parent_id is not None:
        _check_category(db, data.parent_id)
    category = KnowledgeCategory(
        name=data.name,
        description=data.description,
        parent_id=data.parent_id,
        icon=data.icon,
        color=data.color,
        sort_order=data.sort_order,
    )
    db.add(category)
    db.commit()
    db.refresh(category)
    return category


def category_tree(db: Session) -> List[Dict[str, Any]]:
    """Active categories nested under their parents, with published article counts."""
    categories = (
        db.query(KnowledgeCategory)
        .filter(KnowledgeCategory.is_active == True)  # noqa: E712
        .order_by(KnowledgeCategory.sort_order, KnowledgeCategory.name)
        .all()
    )
    counts = dict(
        db.query(KnowledgeArticle.category_id, sqlfunc.count(KnowledgeArticle.id))
        .filter(KnowledgeArticle.status == "published")
        .group_by(KnowledgeArticle.category_id)
        .all()
    )
    nodes = {
        c.id: {
            "id": c.id,
            "name": c.name,
            "description": c.description,
            "icon": c.icon,
            "color": c.color,
            "parent_id": c.parent_id,
            "article_count": counts.get(c.id, 0),
            "children": [],
        }
        for c in categories
    }
    roots: List[Dict[str, Any]] = []
    for c in categories:
        node = nodes[c.id]
        parent = nodes.get(c.parent_id) if c.parent_id else None
        if parent is not None:
            parent["children"].append(node)
        else:
            roots.append(node)
    return roots


def category_with_articles(db: Session, category_id: int) -> Dict[str, Any]:
    category = db.query(KnowledgeCategory).filter(KnowledgeCategory.id == category_id).first()
    if not category:
        raise NotFound("Category not found")
    articles = (
        db.query(KnowledgeArticle)
        .filter(KnowledgeArticle.category_id == category.id, KnowledgeArticle.status == "published")
        .order_by(KnowledgeArticle.view_count.desc())
        .all()
    )
    return {"category": category, "articles": articles}


def analytics(db: Session, days: int = 30) -> Dict[str, Any]:
    since = utcnow() - dt.timedelta(days=days)

    def count_status(status: str) -> int:
        return db.query(sqlfunc.count(KnowledgeArticle.id)).filter(KnowledgeArticle.status == status).scalar() or 0

    total = db.query(sqlfunc.count(KnowledgeArticle.id)).scalar() or 0
    total_views = db.query(sqlfunc.sum(KnowledgeArticle.view_count)).scalar() or 0
    recent_views = (
        db.query(sqlfunc.count(KnowledgeArticleView.id)).filter(KnowledgeArticleView.viewed_at >= since).scalar() or 0
    )
    top = popular_articles(db, limit=10)

    category_rows = (
        db.query(
            KnowledgeCategory.id,
            KnowledgeCategory.name,
            sqlfunc.count(KnowledgeArticle.id),
            sqlfunc.coalesce(sqlfunc.sum(KnowledgeArticle.view_count), 0),
        )
        .outerjoin(KnowledgeArticle, KnowledgeArticle.category_id == KnowledgeCategory.id)
        .group_by(KnowledgeCategory.id, KnowledgeCategory.name)
        .order_by(KnowledgeCategory.name)
        .all()
    )
    return {
        "period_days": days,
        "total_articles": total,
        "published_articles": count_status("published"),
        "draft_articles": count_status("draft"),
        "archived_articles": count_status("archived"),
        "total_views": int(total_views),
        "recent_views": recent_views,
        "top_articles": [
            {"id": a.id, "title": a.title, "view_count": a.view_count, "helpful_count": a.helpful_count} for a in top
        ],
        "category_stats": [
            {"id": cid, "name": name, "article_count": count, "total_views": int(views)}
            for cid, name, count, views in category_rows
        ],
    }


def suggest_articles_for_ticket(db: Session, title: str, description: str, limit: int = 5) -> List[KnowledgeArticle]:
    """Rank published articles against the ticket text with BM25."""
    words = [w for w in _tokenize(f"{title} {description}") if len(w) > 3][:10]
    if not words:
        return []

    articles = db.query(KnowledgeArticle).filter(KnowledgeArticle.status == "published").all()
    if not articles:
        return []

    corpus = [
        _tokenize(" ".join([a.title or "", a.content or "", a.search_keywords or "", " ".join(a.tags or [])]))
        for a in articles
    ]
    bm25 = BM25Okapi(corpus)
    scores = bm25.get_scores(words)

    # Require at least one shared term; BM25 idf can be non-positive on tiny corpora.
    wanted = set(words)
    ranked = [
        (float(scores[i]), a.helpful_count or 0, a.view_count or 0, a)
        for i, a in enumerate(articles)
        if wanted & set(corpus[i])
    ]
    ranked.sort(key=lambda r: (r[0], r[1], r[2]), reverse=True)
    return [r[3] for r in ranked[:limit]]
