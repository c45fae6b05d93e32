"""
Establishments API endpoints
"""
import logging
from typing import List, Optional
from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel
from sqlalchemy import select, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from cafeteria.database import get_db
from cafeteria.models.user import User
from cafeteria.models.establishment import Establishment
from cafeteria.api.auth import require_admin, require_manager, scoped_establishment_id

logger = logging.getLogger(__name__)

router = APIRouter()


class EstablishmentResponse(BaseModel):
    id: int
    name: str
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class EstablishmentPage(BaseModel):
    items: List[EstablishmentResponse]
    total: int
    page: int
    page_size: int


class EstablishmentCreate(BaseModel):
    name: str


@router.get("/", response_model=EstablishmentPage)
async def list_establishments(
    search: str = "",
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=50, ge=1, le=200),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_manager)
):
    """List establishments (managers only see their own)"""
    query = select(Establishment)
    scope = scoped_establishment_id(current_user)
    if scope is not None:
        query = query.where(Establishment.id == scope)
    if search.strip():
        query = query.where(Establishment.name.ilike(f"%{search.strip()}%"))

    total = (await db.execute(select(func.count()).select_from(query.subquery()))).scalar() or 0
    result = await db.execute(
        query.order_by(Establishment.name).offset((page - 1) * page_size).limit(page_size)
    )
    return {"items": result.scalars().all(), "total": total, "page": page, "page_size": page_size}


@router.get("/by-name", response_model=EstablishmentResponse)
async def get_establishment_by_name(
    name: str = Query(...),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_manager)
):
    """Case-insensitive exact name lookup"""
    result = await db.execute(
        select(Establishment).where(func.lower(Establishment.name) == name.strip().lower())
    )
    establishment = result.scalars().first()
    if not establishment:
        raise HTTPException(status_code=404, detail="Establishment not found")
    return establishment


@router.get("/{establishment_id}", response_model=EstablishmentResponse)
async def get_establishment(
    establishment_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_manager)
):
    scope = scoped_establishment_id(current_user)
    if scope is not None and scope != establishment_id:
        raise HTTPException(status_code=403, detail="Forbidden")

    result = await db.execute(
        select(Establishment).where(Establishment.id == establishment_id)
    )
    establishment = result.scalar_one_or_none()
    if not establishment:
        raise HTTPException(status_code=404, detail="Establishment not found")
    return establishment


@router.post("/", response_model=EstablishmentResponse, status_code=201)
async def create_establishment(
    data: EstablishmentCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_admin)
):
    name = " ".join(data.name.split())
    if not name:
        raise HTTPException(status_code=400, detail="Name is required")

    establishment = Establishment(name=name)
    db.add(establishment)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise HTTPException(status_code=409, detail="Establishment already exists")
    await db.refresh(establishment)
    logger.info(f"Created establishment '{name}' (id={establishment.id})")
    return establishment
