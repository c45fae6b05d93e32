"""
Scan / redemption checker.

Each (person, date, meal) slot moves at most once from "planned, unconsumed"
to "consumed". The unique constraint on MealConsumption is the only guard:
a concurrent double scan that loses the insert race reports already_consumed.
"""
from datetime import date, datetime
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from cafeteria.models.meal_plan import Meal, MealConsumption, MealPlan
from cafeteria.models.person import Person
from cafeteria.models.user import User
from cafeteria.services.errors import BadRequest
from cafeteria.utils.logger import get_logger

logger = get_logger(__name__)

NOT_FOUND = "not_found"
NOT_PLANNED = "not_planned"
ALREADY_CONSUMED = "already_consumed"
CONSUMED = "consumed"
OK = "ok"


def infer_meal_from_clock(now: Optional[datetime] = None) -> Meal:
    """Server-local clock: before 10:00 breakfast, before 15:00 lunch, else dinner"""
    now = now or datetime.now()
    if now.hour < 10:
        return Meal.PETIT_DEJEUNER
    if now.hour < 15:
        return Meal.DEJEUNER
    return Meal.DINER


def _person_summary(person: Person) -> dict:
    return {
        "id": person.id,
        "matricule": person.matricule,
        "name": person.name,
        "type": person.type.value if person.type else None,
        "establishment_id": person.establishment_id,
    }


def _result(status: str, person: Optional[dict], day: date, meal: Meal, consumed_at=None) -> dict:
    return {
        "status": status,
        "person": person,
        "date": day.isoformat(),
        "meal": meal.value,
        "consumed_at": consumed_at.isoformat() if consumed_at else None,
    }


async def _find_consumption(db: AsyncSession, person_id: int, day: date, meal: Meal) -> Optional[MealConsumption]:
    result = await db.execute(
        select(MealConsumption).where(
            MealConsumption.person_id == person_id,
            MealConsumption.date == day,
            MealConsumption.meal == meal,
        )
    )
    return result.scalar_one_or_none()


async def scan(
    db: AsyncSession,
    matricule: str,
    meal: Optional[Meal] = None,
    day: Optional[date] = None,
    consume: bool = False,
    scanner: Optional[User] = None,
    now: Optional[datetime] = None,
) -> dict:
    """Check (and with `consume`, redeem) one meal slot for a scanned matricule"""
    matricule = (matricule or "").strip()
    if not matricule:
        raise BadRequest("Matricule is required")

    now = now or datetime.now()
    meal = meal or infer_meal_from_clock(now)
    day = day or now.date()

    result = await db.execute(select(Person).where(Person.matricule == matricule))
    person = result.scalar_one_or_none()
    if not person:
        return _result(NOT_FOUND, None, day, meal)

    # Captured now: a rollback below expires the ORM instance
    summary = _person_summary(person)
    person_id = person.id

    plan_result = await db.execute(
        select(MealPlan.id).where(
            MealPlan.person_id == person_id,
            MealPlan.date == day,
            MealPlan.meal == meal,
            MealPlan.planned == True,
        )
    )
    if plan_result.scalar_one_or_none() is None:
        return _result(NOT_PLANNED, summary, day, meal)

    existing = await _find_consumption(db, person_id, day, meal)
    if existing:
        return _result(ALREADY_CONSUMED, summary, day, meal, existing.consumed_at)

    if not consume:
        return _result(OK, summary, day, meal)

    consumption = MealConsumption(
        person_id=person_id,
        date=day,
        meal=meal,
        consumed_at=datetime.utcnow(),
        scanner_user_id=scanner.id if scanner else None,
        establishment_id=summary["establishment_id"],
    )
    db.add(consumption)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        logger.info(f"Concurrent scan for {matricule} on {day} {meal.value}: already consumed")
        existing = await _find_consumption(db, person_id, day, meal)
        return _result(ALREADY_CONSUMED, summary, day, meal, existing.consumed_at if existing else None)

    logger.info(f"Meal consumed: {matricule} {day} {meal.value}")
    return _result(CONSUMED, summary, day, meal, consumption.consumed_at)
