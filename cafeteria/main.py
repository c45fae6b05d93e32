"""
Main FastAPI application
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import select

from cafeteria.config import get_settings
from cafeteria.database import engine, AsyncSessionLocal, create_tables
from cafeteria.models import User, UserRole, Establishment
from cafeteria.api.auth import get_password_hash
from cafeteria.api import auth, establishments, students, mealplans, plans, scan, reports, tickets
from cafeteria.services.errors import DomainError
from cafeteria.utils.logger import configure_root_logging

settings = get_settings()
configure_root_logging()
logger = logging.getLogger(__name__)


async def seed_defaults(session) -> None:
    """Create the default admin user and establishments when missing"""
    result = await session.execute(
        select(User).where(User.username == settings.DEFAULT_ADMIN_USERNAME)
    )
    if not result.scalar_one_or_none():
        session.add(User(
            username=settings.DEFAULT_ADMIN_USERNAME,
            full_name="Administrator",
            hashed_password=get_password_hash(settings.DEFAULT_ADMIN_PASSWORD),
            role=UserRole.ADMIN,
            must_change_password=True,
        ))
        logger.info(f"Created default admin user '{settings.DEFAULT_ADMIN_USERNAME}'")

    for name in settings.DEFAULT_ESTABLISHMENTS:
        existing = await session.execute(select(Establishment).where(Establishment.name == name))
        if not existing.scalar_one_or_none():
            session.add(Establishment(name=name))
            logger.info(f"Created establishment '{name}'")

    await session.commit()


@asynccontextmanager
async def lifespan(app: FastAPI):
    await create_tables()
    logger.info("Database tables created")

    async with AsyncSessionLocal() as session:
        await seed_defaults(session)

    yield

    await engine.dispose()

app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    debug=settings.DEBUG,
    lifespan=lifespan,
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(DomainError)
async def domain_error_handler(request: Request, exc: DomainError):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


# Include routers
app.include_router(auth.router, prefix="/api/auth", tags=["Authentication"])
app.include_router(establishments.router, prefix="/api/establishments", tags=["Establishments"])
app.include_router(students.router, prefix="/api/students", tags=["People"])
app.include_router(mealplans.router, prefix="/api/mealplans", tags=["Meal Plans"])
app.include_router(plans.router, prefix="/api/plans", tags=["Plan Import"])
app.include_router(scan.router, prefix="/api/scan", tags=["Scan"])
app.include_router(reports.router, prefix="/api/reports", tags=["Reports"])
app.include_router(tickets.router, prefix="/api/tickets", tags=["Tickets"])


@app.get("/")
async def root():
    return {
        "app": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "status": "running"
    }


@app.get("/health")
async def health_check():
    return {"status": "healthy"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "cafeteria.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG
    )
