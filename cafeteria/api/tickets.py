"""
Printed ticket API endpoints: batch generation, listing and scan validation
"""
import logging
from datetime import date, datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from cafeteria.database import get_db
from cafeteria.models.establishment import Establishment
from cafeteria.models.meal_plan import Meal
from cafeteria.models.person import Person
from cafeteria.models.ticket import Ticket, TicketBatch
from cafeteria.models.user import User
from cafeteria.api.auth import require_manager, require_scanner, scoped_establishment_id
from cafeteria.api.mealplans import get_today
from cafeteria.services.tickets import generate_batch, qr_text, validate_ticket
from cafeteria.utils.helpers import parse_ymd
from cafeteria.utils.validators import person_type_for_kind, validate_meal

logger = logging.getLogger(__name__)

router = APIRouter()


class GenerateRequest(BaseModel):
    start_date: str
    end_date: str
    meals: List[str] = [m.value for m in Meal]
    establishment_id: Optional[int] = None
    kind: Optional[str] = "student"


class ValidateRequest(BaseModel):
    payload: Optional[str] = None
    sig: Optional[str] = None


class BatchResponse(BaseModel):
    id: int
    establishment_id: int
    establishment_name: Optional[str] = None
    start_date: date
    end_date: date
    meals: List[str]
    ticket_count: int
    created_at: Optional[datetime] = None


def _batch_response(batch: TicketBatch, establishment_name: Optional[str]) -> dict:
    return {
        "id": batch.id,
        "establishment_id": batch.establishment_id,
        "establishment_name": establishment_name,
        "start_date": batch.start_date,
        "end_date": batch.end_date,
        "meals": batch.meals.split(",") if batch.meals else [],
        "ticket_count": batch.ticket_count or 0,
        "created_at": batch.created_at,
    }


@router.post("/generate")
async def generate_tickets(
    data: GenerateRequest,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_manager)
):
    """Generate a ticket batch; managers always generate for their own establishment"""
    start = parse_ymd(data.start_date)
    end = parse_ymd(data.end_date)
    if not start or not end:
        raise HTTPException(status_code=400, detail="start_date and end_date are required (YYYY-MM-DD)")

    try:
        meals = [validate_meal(m) for m in data.meals]
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    meals = [m for m in meals if m]

    establishment_id = scoped_establishment_id(current_user, data.establishment_id)
    if establishment_id is None:
        raise HTTPException(status_code=400, detail="establishment_id is required")
    exists = await db.execute(select(Establishment.id).where(Establishment.id == establishment_id))
    if exists.scalar_one_or_none() is None:
        raise HTTPException(status_code=404, detail="Establishment not found")

    return await generate_batch(
        db,
        establishment_id,
        start,
        end,
        meals,
        created_by=current_user,
        person_type=person_type_for_kind(data.kind),
    )


@router.get("/batches", response_model=List[BatchResponse])
async def list_batches(
    establishment_id: Optional[int] = None,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_manager)
):
    """Most recent batches first"""
    query = select(TicketBatch, Establishment.name).join(
        Establishment, TicketBatch.establishment_id == Establishment.id
    )
    scope = scoped_establishment_id(current_user, establishment_id)
    if scope is not None:
        query = query.where(TicketBatch.establishment_id == scope)

    result = await db.execute(query.order_by(TicketBatch.created_at.desc(), TicketBatch.id.desc()))
    return [_batch_response(batch, name) for batch, name in result.all()]


@router.get("/batches/{batch_id}/tickets")
async def list_batch_tickets(
    batch_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_manager)
):
    """Tickets of a batch with the text to print as QR codes"""
    result = await db.execute(select(TicketBatch).where(TicketBatch.id == batch_id))
    batch = result.scalar_one_or_none()
    if not batch:
        raise HTTPException(status_code=404, detail="Batch not found")

    scope = scoped_establishment_id(current_user)
    if scope is not None and batch.establishment_id != scope:
        raise HTTPException(status_code=403, detail="Forbidden")

    result = await db.execute(
        select(Ticket, Person)
        .join(Person, Ticket.person_id == Person.id)
        .where(Ticket.batch_id == batch_id)
        .order_by(Ticket.date, Ticket.meal, Person.name)
    )
    return {
        "batch_id": batch_id,
        "items": [
            {
                "id": ticket.id,
                "date": ticket.date.isoformat(),
                "meal": ticket.meal.value,
                "matricule": person.matricule,
                "name": person.name,
                "used_at": ticket.used_at.isoformat() if ticket.used_at else None,
                "qr": qr_text(ticket),
            }
            for ticket, person in result.all()
        ],
    }


@router.post("/validate")
async def validate(
    data: ValidateRequest,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_scanner),
    today: date = Depends(get_today)
):
    """Redeem a scanned ticket once, on its own day"""
    return await validate_ticket(db, data.payload, data.sig, today)
