"""
Attendance reports: planned vs eaten meals per day, week and month
"""
import logging
from typing import Optional
from datetime import date, timedelta

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from cafeteria.database import get_db
from cafeteria.models.user import User
from cafeteria.models.person import Person
from cafeteria.models.meal_plan import MealPlan, MealConsumption
from cafeteria.api.auth import require_manager, scoped_establishment_id
from cafeteria.api.mealplans import get_today
from cafeteria.utils.helpers import parse_ymd
from cafeteria.utils.validators import validate_meal, validate_person_type

logger = logging.getLogger(__name__)

router = APIRouter()


def _parse_filters(meal: Optional[str], type: Optional[str]):
    try:
        return validate_meal(meal), validate_person_type(type)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


def _filtered(query, model, start: date, end: date, meal, person_type, establishment_id):
    """Restrict `query` on `model` to [start, end) and the person filters"""
    query = query.select_from(model).join(Person, model.person_id == Person.id).where(
        model.date >= start,
        model.date < end,
    )
    if model is MealPlan:
        query = query.where(MealPlan.planned == True)
    if meal:
        query = query.where(model.meal == meal)
    if person_type:
        query = query.where(Person.type == person_type)
    if establishment_id is not None:
        query = query.where(Person.establishment_id == establishment_id)
    return query


async def _summary(db: AsyncSession, start: date, end: date, meal, person_type, establishment_id) -> dict:
    planned = (await db.execute(
        _filtered(select(func.count(MealPlan.id)), MealPlan, start, end, meal, person_type, establishment_id)
    )).scalar() or 0
    eaten = (await db.execute(
        _filtered(select(func.count(MealConsumption.id)), MealConsumption, start, end, meal, person_type, establishment_id)
    )).scalar() or 0
    return {
        "start": start.isoformat(),
        "end": (end - timedelta(days=1)).isoformat(),
        "planned": planned,
        "eaten": eaten,
        "no_show": max(0, planned - eaten),
    }


def _person_row(person: Person) -> dict:
    return {"id": person.id, "matricule": person.matricule, "name": person.name}


@router.get("/by-day")
async def report_by_day(
    date: Optional[str] = None,
    meal: Optional[str] = None,
    establishment_id: Optional[int] = None,
    type: Optional[str] = None,
    status: Optional[str] = Query(default=None, pattern="^(used|unused)$"),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_manager),
    today: date = Depends(get_today)
):
    """Planned / eaten / no-show for one day (default: today, UTC); `status` lists used or unused people"""
    day = parse_ymd(date) if date else today
    if not day:
        raise HTTPException(status_code=400, detail="Invalid date, expected YYYY-MM-DD")
    meal_value, person_type = _parse_filters(meal, type)
    scope = scoped_establishment_id(current_user, establishment_id)
    end = day + timedelta(days=1)

    summary = await _summary(db, day, end, meal_value, person_type, scope)
    summary["date"] = day.isoformat()

    if status == "used":
        result = await db.execute(
            _filtered(select(Person), MealConsumption, day, end, meal_value, person_type, scope)
            .order_by(Person.name)
        )
        summary["used"] = [_person_row(p) for p in result.scalars().unique().all()]
    elif status == "unused":
        consumed = _filtered(
            select(MealConsumption.person_id), MealConsumption, day, end, meal_value, person_type, scope
        )
        result = await db.execute(
            _filtered(select(Person), MealPlan, day, end, meal_value, person_type, scope)
            .where(Person.id.not_in(consumed))
            .order_by(Person.name)
        )
        summary["unused"] = [_person_row(p) for p in result.scalars().unique().all()]

    return summary


@router.get("/by-week")
async def report_by_week(
    week_start: Optional[str] = None,
    meal: Optional[str] = None,
    establishment_id: Optional[int] = None,
    type: Optional[str] = None,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_manager)
):
    """Seven days starting at `week_start`"""
    start = parse_ymd(week_start)
    if not start:
        raise HTTPException(status_code=400, detail="week_start is required (YYYY-MM-DD)")
    meal_value, person_type = _parse_filters(meal, type)
    scope = scoped_establishment_id(current_user, establishment_id)
    return await _summary(db, start, start + timedelta(days=7), meal_value, person_type, scope)


@router.get("/by-month")
async def report_by_month(
    year: int = Query(..., ge=2000, le=2100),
    month: int = Query(..., ge=1, le=12),
    meal: Optional[str] = None,
    establishment_id: Optional[int] = None,
    type: Optional[str] = None,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_manager)
):
    start = _month_start(year, month)
    end = _month_start(year + 1, 1) if month == 12 else _month_start(year, month + 1)
    meal_value, person_type = _parse_filters(meal, type)
    scope = scoped_establishment_id(current_user, establishment_id)
    return await _summary(db, start, end, meal_value, person_type, scope)


def _month_start(year: int, month: int) -> date:
    return date(year, month, 1)