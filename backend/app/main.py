import logging
import uuid

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.core.config import settings
from app.core.exceptions import LedgerError
from app.models import Base  # noqa: F401 - register models
from app.routers import auth, health, partners, transactions, webhooks

logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Partner Revenue Ledger API",
    description="Partner commission, transaction and refund ledger",
    version="0.1.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(LedgerError)
async def ledger_error_handler(request: Request, exc: LedgerError):
    # Same {"detail": ...} shape as HTTPException
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


app.include_router(health.router, prefix="/health")
app.include_router(auth.router, prefix="/auth")
app.include_router(partners.router, prefix="/partners")
app.include_router(transactions.router, prefix="/transactions")
app.include_router(webhooks.router, prefix="/webhooks")


@app.on_event("startup")
async def startup():
    # Seed the first platform admin if none exists and a password is configured
    if not settings.INITIAL_ADMIN_PASSWORD:
        return
    from app.core.database import SessionLocal
    from app.core.security import get_password_hash
    from app.models.admin_user import AdminUser
    db = SessionLocal()
    try:
        if db.query(AdminUser).first() is None:
            db.add(
                AdminUser(
                    id=str(uuid.uuid4()),
                    username=settings.INITIAL_ADMIN_USERNAME,
                    hashed_password=get_password_hash(settings.INITIAL_ADMIN_PASSWORD),
                    is_active=True,
                )
            )
            db.commit()
            logger.info("Seeded initial admin %s", settings.INITIAL_ADMIN_USERNAME)
    finally:
        db.close()
