from contextlib import asynccontextmanager
import asyncio
import logging

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from bsg_helpdesk.core.clock import utcnow
from bsg_helpdesk.core.config import settings
from bsg_helpdesk.core.database import Base, SessionLocal, engine
from bsg_helpdesk.core.errors import ServiceError

# Import models so SQLAlchemy registers tables for create_all().
import bsg_helpdesk.models  # noqa: F401

# Routes
from bsg_helpdesk.api.dependencies import get_db
from bsg_helpdesk.api.routes import (
    assets,
    auth,
    bsg_templates,
    categorization,
    cmdb,
    departments,
    knowledge_base,
    reports,
    service_catalog,
    service_catalog_admin,
    sla,
    tickets,
    tickets_v2,
)
from bsg_helpdesk.models.user import User
from bsg_helpdesk.services.auth_service import hash_password
from bsg_helpdesk.services.escalation_service import run_escalation_loop

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


def bootstrap_admin() -> None:
    """Create or refresh the configured admin account."""
    if not (settings.ADMIN_BOOTSTRAP_USERNAME and settings.ADMIN_BOOTSTRAP_PASSWORD):
        return
    db = SessionLocal()
    try:
        admin = db.query(User).filter(User.username == settings.ADMIN_BOOTSTRAP_USERNAME).first()
        password_hash = hash_password(settings.ADMIN_BOOTSTRAP_PASSWORD)
        if not admin:
            admin = User(
                username=settings.ADMIN_BOOTSTRAP_USERNAME,
                email=settings.ADMIN_BOOTSTRAP_EMAIL or f"{settings.ADMIN_BOOTSTRAP_USERNAME}@localhost",
                password_hash=password_hash,
                role="admin",
            )
            db.add(admin)
            db.commit()
            logger.info("Bootstrapped admin user '%s'", settings.ADMIN_BOOTSTRAP_USERNAME)
        else:
            admin.password_hash = password_hash
            admin.role = "admin"
            admin.is_active = True
            db.commit()
            logger.info("Updated admin user '%s' from bootstrap settings", settings.ADMIN_BOOTSTRAP_USERNAME)
    finally:
        db.close()


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting up: initializing database...")
    try:
        Base.metadata.create_all(bind=engine)
        bootstrap_admin()
        logger.info("Database initialized successfully.")
    except SQLAlchemyError:
        logger.exception("Database initialization failed")

    stop_event = asyncio.Event()
    escalation_task = None
    if settings.ESCALATION_ENABLED:
        escalation_task = asyncio.create_task(run_escalation_loop(stop_event))

    yield

    logger.info("Shutting down...")
    stop_event.set()
    if escalation_task is not None:
        await escalation_task


app = FastAPI(
    title=settings.PROJECT_NAME,
    version=settings.VERSION,
    openapi_url=f"{settings.API_PREFIX}/openapi.json",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(ServiceError)
async def service_error_handler(request: Request, exc: ServiceError):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message, "errors": exc.errors})


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


api = settings.API_PREFIX
app.include_router(auth.router, prefix=f"{api}/auth", tags=["Auth"])
app.include_router(departments.router, prefix=f"{api}/departments", tags=["Departments"])
app.include_router(tickets.router, prefix=f"{api}/tickets", tags=["Tickets"])
app.include_router(tickets_v2.router, prefix=f"{api}/v2/tickets", tags=["Service Tickets"])
app.include_router(bsg_templates.router, prefix=f"{api}/bsg-templates", tags=["BSG Templates"])
app.include_router(service_catalog.router, prefix=f"{api}/service-catalog", tags=["Service Catalog"])
app.include_router(
    service_catalog_admin.router, prefix=f"{api}/service-catalog-admin", tags=["Service Catalog Admin"]
)
app.include_router(categorization.router, prefix=f"{api}/categorization", tags=["Categorization"])
app.include_router(knowledge_base.router, prefix=f"{api}/knowledge-base", tags=["Knowledge Base"])
app.include_router(assets.router, prefix=f"{api}/assets", tags=["Assets"])
app.include_router(cmdb.router, prefix=f"{api}/cmdb", tags=["CMDB"])
app.include_router(sla.router, prefix=f"{api}/sla", tags=["SLA"])
app.include_router(reports.router, prefix=f"{api}/reporting", tags=["Reporting"])


@app.get("/health")
def health(db: Session = Depends(get_db)):
    timestamp = utcnow().isoformat() + "Z"
    try:
        db.execute(text("SELECT 1"))
    except SQLAlchemyError:
        logger.exception("Health check failed")
        return JSONResponse(
            status_code=503,
            content={"status": "unhealthy", "database": "disconnected", "timestamp": timestamp},
        )
    return {"status": "healthy", "database": "connected", "timestamp": timestamp}


@app.get("/")
def read_root():
    return {"status": "success", "message": f"Welcome to {settings.PROJECT_NAME} API"}


def run() -> None:
    import uvicorn

    uvicorn.run("bsg_helpdesk.main:app", host=settings.HOST, port=settings.PORT)
