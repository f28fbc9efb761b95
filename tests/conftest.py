import os

# Settings are read at import time; keep tests off real SMTP, disk and the background loop.
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["ESCALATION_ENABLED"] = "false"
os.environ["EMAIL_HOST"] = ""
os.environ["ESCALATION_EMAIL"] = ""
os.environ["JWT_SECRET"] = "test-secret-key-for-bsg-helpdesk"

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from bsg_helpdesk.api.dependencies import get_db
from bsg_helpdesk.core.database import Base
from bsg_helpdesk.main import app
from bsg_helpdesk.models.organization import Department, Unit
from bsg_helpdesk.models.service_catalog import (
    CustomFieldDefinition,
    ServiceCatalog,
    ServiceItem,
    ServiceTemplate,
)
from bsg_helpdesk.models.user import User
from bsg_helpdesk.services.auth_service import hash_password, token_for_user

PASSWORD = "password123"


@pytest.fixture
def db_session():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def client(db_session):
    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.pop(get_db, None)


class Factory:
    """Small builders for the rows most tests need."""

    def __init__(self, db):
        self.db = db
        self._seq = 0

    def _next(self) -> int:
        self._seq += 1
        return self._seq

    def _save(self, obj):
        self.db.add(obj)
        self.db.commit()
        self.db.refresh(obj)
        return obj

    def department(self, name=None, department_type="internal"):
        return self._save(Department(name=name or f"Department {self._next()}", department_type=department_type))

    def unit(self, department, code=None, name="Head Office"):
        return self._save(Unit(code=code or f"U{self._next():03d}", name=name, department_id=department.id))

    def user(self, role="requester", department=None, manager=None, **extra):
        n = self._next()
        return self._save(
            User(
                username=extra.pop("username", f"{role}{n}"),
                email=extra.pop("email", f"{role}{n}@bsg.test"),
                password_hash=hash_password(extra.pop("password", PASSWORD)),
                role=role,
                department_id=department.id if department else None,
                manager_id=manager.id if manager else None,
                **extra,
            )
        )

    def catalog(self, department, name=None):
        return self._save(ServiceCatalog(name=name or f"Catalog {self._next()}", department_id=department.id))

    def item(self, catalog, name=None, **extra):
        return self._save(ServiceItem(catalog_id=catalog.id, name=name or f"Service {self._next()}", **extra))

    def template(self, item, name=None, **extra):
        return self._save(ServiceTemplate(service_item_id=item.id, name=name or f"Template {self._next()}", **extra))

    def field(self, *, template=None, item=None, field_name="field", field_label="Field", **extra):
        return self._save(
            CustomFieldDefinition(
                service_template_id=template.id if template else None,
                service_item_id=item.id if item else None,
                field_name=field_name,
                field_label=field_label,
                **extra,
            )
        )


@pytest.fixture
def factory(db_session):
    return Factory(db_session)


def auth_headers(user: User) -> dict:
    return {"Authorization": f"Bearer {token_for_user(user)}"}
