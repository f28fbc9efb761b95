from sqlalchemy import Column, Integer, String, Text, Boolean, DateTime, ForeignKey, JSON, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from bsg_helpdesk.core.database import Base

ARTICLE_STATUSES = ("draft", "published", "archived")
LINK_TYPES = ("solution", "reference", "related")


class KnowledgeCategory(Base):
    __tablename__ = "knowledge_categories"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(128), nullable=False)
    description = Column(Text, nullable=True)
    parent_id = Column(Integer, ForeignKey("knowledge_categories.id"), nullable=True)
    icon = Column(String(64), nullable=True)
    color = Column(String(16), nullable=True)
    sort_order = Column(Integer, default=0, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)

    created_at = Column(DateTime, server_default=func.now())

    children = relationship("KnowledgeCategory", order_by="KnowledgeCategory.sort_order")


class KnowledgeArticle(Base):
    __tablename__ = "knowledge_articles"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(255), nullable=False)
    content = Column(Text, nullable=False)
    excerpt = Column(Text, nullable=True)
    category_id = Column(Integer, ForeignKey("knowledge_categories.id"), nullable=True, index=True)
    tags = Column(JSON, default=list)
    search_keywords = Column(Text, nullable=True)
    status = Column(String(16), default="draft", nullable=False, index=True)

    author_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    editor_id = Column(Integer, ForeignKey("users.id"), nullable=True)

    view_count = Column(Integer, default=0, nullable=False)
    helpful_count = Column(Integer, default=0, nullable=False)
    not_helpful_count = Column(Integer, default=0, nullable=False)

    published_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    category = relationship("KnowledgeCategory")
    author = relationship("User", foreign_keys=[author_id])
    editor = relationship("User", foreign_keys=[editor_id])


class KnowledgeArticleView(Base):
    __tablename__ = "knowledge_article_views"

    id = Column(Integer, primary_key=True, index=True)
    article_id = Column(Integer, ForeignKey("knowledge_articles.id"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    ip_address = Column(String(64), nullable=True)
    user_agent = Column(String(255), nullable=True)

    viewed_at = Column(DateTime, server_default=func.now(), index=True)


class KnowledgeArticleFeedback(Base):
    __tablename__ = "knowledge_article_feedback"

    id = Column(Integer, primary_key=True, index=True)
    article_id = Column(Integer, ForeignKey("knowledge_articles.id"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    ip_address = Column(String(64), nullable=True)
    is_helpful = Column(Boolean, nullable=False)
    comment = Column(Text, nullable=True)

    created_at = Column(DateTime, server_default=func.now())


class KnowledgeTicketLink(Base):
    __tablename__ = "knowledge_ticket_links"
    __table_args__ = (UniqueConstraint("article_id", "ticket_id", name="uq_article_ticket"),)

    id = Column(Integer, primary_key=True, index=True)
    article_id = Column(Integer, ForeignKey("knowledge_articles.id"), nullable=False)
    ticket_id = Column(Integer, ForeignKey("tickets.id"), nullable=False, index=True)
    link_type = Column(String(16), default="related", nullable=False)
    linked_by_user_id = Column(Integer, ForeignKey("users.id"), nullable=False)

    created_at = Column(DateTime, server_default=func.now())

    article = relationship("KnowledgeArticle")
