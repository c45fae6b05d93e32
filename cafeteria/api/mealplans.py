"""
Meal plans API endpoints: admin listing / clearing and student-staff self-service
"""
import logging
from typing import Dict, List, Optional
from datetime import date

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel
from sqlalchemy import select, delete, func, or_
from sqlalchemy.ext.asyncio import AsyncSession

from cafeteria.database import get_db
from cafeteria.models.user import User
from cafeteria.models.person import Person, PersonType
from cafeteria.models.meal_plan import Meal, MealPlan
from cafeteria.api.auth import get_current_user, require_admin, require_manager, scoped_establishment_id
from cafeteria.services.meal_window import utc_today
from cafeteria.services.plan_editor import read_self_plan, replace_self_plan
from cafeteria.utils.helpers import parse_ymd
from cafeteria.utils.validators import validate_meal, validate_person_type

logger = logging.getLogger(__name__)

router = APIRouter()

MAX_PAGE_SIZE = 200


def get_today() -> date:
    """Clock dependency for window computations"""
    return utc_today()


class PersonSummary(BaseModel):
    id: int
    matricule: str
    name: str
    type: PersonType
    establishment_id: Optional[int] = None

    class Config:
        from_attributes = True


class MealPlanResponse(BaseModel):
    id: int
    date: date
    meal: Meal
    planned: bool
    person: PersonSummary

    class Config:
        from_attributes = True


class MealPlanPage(BaseModel):
    items: List[MealPlanResponse]
    total: int
    page: int
    page_size: int


class SelfPlanRequest(BaseModel):
    start: Optional[str] = None
    end: Optional[str] = None
    choices: Optional[Dict[str, Dict[str, bool]]] = None


# ─── Self-service ───

@router.get("/self")
async def get_self_plan(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
    today: date = Depends(get_today)
):
    """Active window with the caller's per-day choices"""
    return await read_self_plan(db, current_user, today)


@router.post("/self")
async def save_self_plan(
    data: SelfPlanRequest,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
    today: date = Depends(get_today)
):
    """Replace the caller's selections for one window"""
    return await replace_self_plan(db, current_user, data.start, data.end, data.choices, today)


# ─── Admin ───

@router.get("/", response_model=MealPlanPage)
async def list_meal_plans(
    search: str = "",
    meal: Optional[str] = None,
    date_from: Optional[str] = Query(default=None, alias="from"),
    date_to: Optional[str] = Query(default=None, alias="to"),
    establishment_id: Optional[int] = None,
    type: Optional[str] = None,
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=50, ge=1),
    order: str = Query(default="asc", pattern="^(asc|desc)$"),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_manager)
):
    """List meal plans; `from` is inclusive and `to` exclusive"""
    page_size = min(page_size, MAX_PAGE_SIZE)
    query = select(MealPlan).join(Person, MealPlan.person_id == Person.id)

    start = parse_ymd(date_from) if date_from else None
    end = parse_ymd(date_to) if date_to else None
    if (date_from and not start) or (date_to and not end):
        raise HTTPException(status_code=400, detail="Invalid date, expected YYYY-MM-DD")
    if start and end and end <= start:
        raise HTTPException(status_code=400, detail="'to' must be after 'from'")
    if start:
        query = query.where(MealPlan.date >= start)
    if end:
        query = query.where(MealPlan.date < end)

    try:
        meal_value = validate_meal(meal)
        person_type = validate_person_type(type)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if meal_value:
        query = query.where(MealPlan.meal == meal_value)
    if person_type:
        query = query.where(Person.type == person_type)

    scope = scoped_establishment_id(current_user, establishment_id)
    if scope is not None:
        query = query.where(Person.establishment_id == scope)

    term = search.strip()
    if term:
        pattern = f"%{term}%"
        query = query.where(or_(Person.name.ilike(pattern), Person.matricule.ilike(pattern)))

    total = (await db.execute(select(func.count()).select_from(query.subquery()))).scalar() or 0

    ordering = (MealPlan.date.desc(), MealPlan.id.desc()) if order == "desc" else (MealPlan.date, MealPlan.id)
    result = await db.execute(
        query.order_by(*ordering).offset((page - 1) * page_size).limit(page_size)
    )
    plans = result.scalars().all()

    # Load persons for the page in one query
    person_ids = {p.person_id for p in plans}
    people = {}
    if person_ids:
        people_result = await db.execute(select(Person).where(Person.id.in_(person_ids)))
        people = {p.id: p for p in people_result.scalars().all()}

    items = [
        {
            "id": p.id,
            "date": p.date,
            "meal": p.meal,
            "planned": p.planned,
            "person": people[p.person_id],
        }
        for p in plans
    ]
    return {"items": items, "total": total, "page": page, "page_size": page_size}


@router.delete("/{plan_id}")
async def delete_meal_plan(
    plan_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_manager)
):
    result = await db.execute(select(MealPlan).where(MealPlan.id == plan_id))
    plan = result.scalar_one_or_none()
    if not plan:
        raise HTTPException(status_code=404, detail="Meal plan not found")

    scope = scoped_establishment_id(current_user)
    if scope is not None:
        owner = await db.execute(select(Person.establishment_id).where(Person.id == plan.person_id))
        if owner.scalar_one_or_none() != scope:
            raise HTTPException(status_code=403, detail="Forbidden")

    await db.delete(plan)
    await db.commit()
    return {"ok": True}


@router.delete("/")
async def clear_meal_plans(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_admin)
):
    """Delete every meal plan"""
    result = await db.execute(delete(MealPlan))
    await db.commit()
    logger.warning(f"User {current_user.id} cleared all meal plans ({result.rowcount} rows)")
    return {"ok": True, "deleted": result.rowcount}
