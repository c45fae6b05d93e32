"""
Self-service meal plan editor.

Reads a person's selections for the active window and replaces them in one
transaction. The acting person is resolved from the authenticated user: the
username is the matricule and a STAFF role selects a STAFF person.
"""
from datetime import date
from typing import Dict, Optional

from sqlalchemy import select, delete
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from cafeteria.models.meal_plan import Meal, MealPlan
from cafeteria.models.person import Person, PersonType
from cafeteria.models.user import User, UserRole
from cafeteria.services.errors import BadRequest, Conflict, Forbidden, NotFound
from cafeteria.services.meal_window import LOCK_DAYS, is_canonical_window, is_locked, pick_window
from cafeteria.utils.helpers import iter_days, parse_ymd
from cafeteria.utils.logger import get_logger

logger = get_logger(__name__)

# Wire keys used by the self-service form
CHOICE_KEYS: Dict[str, Meal] = {
    "petitDej": Meal.PETIT_DEJEUNER,
    "dej": Meal.DEJEUNER,
    "diner": Meal.DINER,
}
MEAL_TO_KEY = {meal: key for key, meal in CHOICE_KEYS.items()}

PENDING_PAYMENT = "PENDING_PAYMENT"


def _person_type_for(user: User) -> PersonType:
    return PersonType.STAFF if user.role == UserRole.STAFF else PersonType.STUDENT


def plan_status(user: User, any_selected: bool) -> Optional[str]:
    """Staff pay for their meals: any selection leaves the plan pending payment"""
    if user.role == UserRole.STAFF and any_selected:
        return PENDING_PAYMENT
    return None


def empty_choices(start: date, end: date) -> Dict[str, Dict[str, bool]]:
    return {
        day.isoformat(): {key: False for key in CHOICE_KEYS}
        for day in iter_days(start, end)
    }


async def resolve_person(db: AsyncSession, user: User) -> Person:
    matricule = (user.username or "").strip()
    if not matricule:
        raise NotFound("No person found for this user")

    result = await db.execute(
        select(Person).where(
            Person.matricule == matricule,
            Person.type == _person_type_for(user),
        )
    )
    person = result.scalar_one_or_none()
    if not person:
        raise NotFound("No person found for this user")
    return person


async def read_self_plan(db: AsyncSession, user: User, today: date) -> dict:
    """Active window, per-day choices and payment status for the user"""
    person = await resolve_person(db, user)
    window = pick_window(today)

    result = await db.execute(
        select(MealPlan).where(
            MealPlan.person_id == person.id,
            MealPlan.date >= window.start,
            MealPlan.date <= window.end,
        )
    )
    rows = result.scalars().all()

    choices = empty_choices(window.start, window.end)
    any_selected = False
    for row in rows:
        if not row.planned:
            continue
        day = choices.get(row.date.isoformat())
        if day is None:
            continue
        day[MEAL_TO_KEY[Meal(row.meal)]] = True
        any_selected = True

    return {
        "start": window.start.isoformat(),
        "end": window.end.isoformat(),
        "locked": window.locked,
        "choices": choices,
        "status": plan_status(user, any_selected),
    }


def _selected_slots(start: date, end: date, choices: Optional[dict]) -> set[tuple[date, Meal]]:
    choices = choices or {}
    selected = set()
    for day in iter_days(start, end):
        day_choice = choices.get(day.isoformat()) or {}
        for key, meal in CHOICE_KEYS.items():
            if day_choice.get(key) is True:
                selected.add((day, meal))
    return selected


async def replace_self_plan(
    db: AsyncSession,
    user: User,
    start: Optional[str],
    end: Optional[str],
    choices: Optional[dict],
    today: date,
) -> dict:
    """Replace every plan row of the user inside [start, end] with `choices`.

    Delete and insert are committed together, so readers never observe a
    half-replaced window.
    """
    person = await resolve_person(db, user)

    start_date = parse_ymd(start)
    end_date = parse_ymd(end)
    if not start_date or not end_date or end_date < start_date:
        raise BadRequest("Invalid window")

    if is_locked(start_date, today):
        raise Forbidden(f"Window is locked (less than {LOCK_DAYS} days before its start)")

    if not is_canonical_window(start_date, end_date):
        raise BadRequest("Window not allowed")

    selected = _selected_slots(start_date, end_date, choices)
    person_id = person.id

    deleted = await db.execute(
        delete(MealPlan).where(
            MealPlan.person_id == person_id,
            MealPlan.date >= start_date,
            MealPlan.date <= end_date,
        )
    )
    db.add_all([
        MealPlan(person_id=person_id, date=day, meal=meal, planned=True)
        for day, meal in sorted(selected)
    ])

    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        logger.warning(f"Concurrent plan replacement for person {person_id} in {start_date}..{end_date}")
        raise Conflict("Meal plan was modified concurrently, please retry")

    logger.info(
        f"Replaced plan of person {person_id} for {start_date}..{end_date}: "
        f"{len(selected)} selected, {deleted.rowcount} removed"
    )
    return {
        "ok": True,
        "created": len(selected),
        "deleted": deleted.rowcount,
        "status": plan_status(user, bool(selected)),
    }
