"""
Printed meal tickets.

A batch holds one ticket per person of an establishment, per day and meal of
a period. The QR code of a ticket carries a base64url JSON payload and its
HMAC-SHA256 signature; a scanner validates a ticket once, on its own day.
"""
import base64
import binascii
import hashlib
import hmac
import json
from datetime import date, datetime
from typing import Iterable, List, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from cafeteria.config import get_settings
from cafeteria.models.meal_plan import Meal
from cafeteria.models.person import Person, PersonType
from cafeteria.models.ticket import Ticket, TicketBatch
from cafeteria.models.user import User
from cafeteria.services.errors import BadRequest, NotFound
from cafeteria.utils.helpers import iter_days
from cafeteria.utils.logger import get_logger

settings = get_settings()
logger = get_logger(__name__)

# Validation rejections, sent back as the error detail
MISSING_PARAMS = "missing_params"
SIGNATURE_INVALID = "signature_invalid"
PAYLOAD_INVALID = "payload_invalid"
TICKET_NOT_FOUND = "not_found"
OBSOLETE = "obsolete"
ALREADY_USED = "already_used"


# ──────────────────────────────────────────────────────
#  Payload signing
# ──────────────────────────────────────────────────────

def encode_payload(person_id: int, day: date, meal: Meal, batch_id: int) -> str:
    raw = json.dumps(
        {"personId": person_id, "d": day.isoformat(), "m": meal.value, "batchId": batch_id},
        separators=(",", ":"),
    )
    return base64.urlsafe_b64encode(raw.encode("utf-8")).decode("ascii").rstrip("=")


def decode_payload(payload: str) -> Optional[dict]:
    try:
        padded = payload + "=" * (-len(payload) % 4)
        data = json.loads(base64.urlsafe_b64decode(padded.encode("ascii")))
        return {
            "person_id": int(data["personId"]),
            "date": date.fromisoformat(data["d"]),
            "meal": Meal(data["m"]),
            "batch_id": int(data["batchId"]),
        }
    except (binascii.Error, UnicodeError, ValueError, KeyError, TypeError):
        return None


def sign_payload(payload: str) -> str:
    return hmac.new(settings.QR_SECRET.encode("utf-8"), payload.encode("utf-8"), hashlib.sha256).hexdigest()


def qr_text(ticket: Ticket) -> str:
    """Text encoded in the printed QR code"""
    return json.dumps({"p": ticket.payload, "s": ticket.sig}, separators=(",", ":"))


# ──────────────────────────────────────────────────────
#  Generation
# ──────────────────────────────────────────────────────

async def generate_batch(
    db: AsyncSession,
    establishment_id: int,
    start: date,
    end: date,
    meals: Iterable[Meal],
    created_by: Optional[User] = None,
    person_type: PersonType = PersonType.STUDENT,
) -> dict:
    """Create a batch with a ticket for every person, day and meal of [start, end]"""
    meals = list(dict.fromkeys(meals))
    if not meals:
        raise BadRequest("At least one meal is required")
    if end < start:
        raise BadRequest("end_date must not be before start_date")
    days = list(iter_days(start, end))
    if len(days) > settings.TICKET_MAX_DAYS:
        raise BadRequest(f"A batch covers at most {settings.TICKET_MAX_DAYS} days")

    result = await db.execute(
        select(Person.id).where(
            Person.establishment_id == establishment_id,
            Person.type == person_type,
        ).order_by(Person.name)
    )
    person_ids = result.scalars().all()
    if not person_ids:
        return {"ok": True, "batch_id": None, "created": 0}

    batch = TicketBatch(
        establishment_id=establishment_id,
        start_date=start,
        end_date=end,
        meals=",".join(m.value for m in meals),
        created_by_id=created_by.id if created_by else None,
    )
    db.add(batch)
    await db.flush()

    tickets: List[Ticket] = []
    for day in days:
        for meal in meals:
            for person_id in person_ids:
                payload = encode_payload(person_id, day, meal, batch.id)
                tickets.append(Ticket(
                    batch_id=batch.id,
                    person_id=person_id,
                    establishment_id=establishment_id,
                    date=day,
                    meal=meal,
                    payload=payload,
                    sig=sign_payload(payload),
                ))
    db.add_all(tickets)
    batch.ticket_count = len(tickets)
    batch_id = batch.id
    await db.commit()

    logger.info(
        f"Ticket batch {batch_id} for establishment {establishment_id}: "
        f"{len(person_ids)} people x {len(days)} days x {len(meals)} meals = {len(tickets)} tickets"
    )
    return {"ok": True, "batch_id": batch_id, "created": len(tickets)}


# ──────────────────────────────────────────────────────
#  Validation
# ──────────────────────────────────────────────────────

async def validate_ticket(
    db: AsyncSession,
    payload: Optional[str],
    sig: Optional[str],
    today: date,
    now: Optional[datetime] = None,
) -> dict:
    """Check a scanned ticket and mark it used. A ticket is only valid on its own day."""
    if not payload or not sig:
        raise BadRequest(MISSING_PARAMS)
    if not hmac.compare_digest(sign_payload(payload).encode("ascii"), sig.strip().lower().encode("utf-8")):
        raise BadRequest(SIGNATURE_INVALID)

    data = decode_payload(payload)
    if data is None:
        raise BadRequest(PAYLOAD_INVALID)

    result = await db.execute(
        select(Ticket, Person).join(Person, Ticket.person_id == Person.id).where(
            Ticket.batch_id == data["batch_id"],
            Ticket.person_id == data["person_id"],
            Ticket.date == data["date"],
            Ticket.meal == data["meal"],
            Ticket.payload == payload,
        )
    )
    row = result.first()
    if row is None:
        raise NotFound(TICKET_NOT_FOUND)
    ticket, person = row

    if data["date"] != today:
        raise BadRequest(OBSOLETE)
    if ticket.used_at is not None:
        raise BadRequest(ALREADY_USED)

    summary = {"matricule": person.matricule, "name": person.name}
    ticket_id = ticket.id

    # Guarded update: of two concurrent scans only one sees used_at still NULL
    marked = await db.execute(
        update(Ticket)
        .where(Ticket.id == ticket_id, Ticket.used_at.is_(None))
        .values(used_at=now or datetime.utcnow())
    )
    await db.commit()
    if marked.rowcount != 1:
        logger.info(f"Ticket {ticket_id} was validated concurrently")
        raise BadRequest(ALREADY_USED)

    logger.info(f"Ticket {ticket_id} used: {summary['matricule']} {data['date']} {data['meal'].value}")
    return {"ok": True, "person": summary, "date": data["date"].isoformat(), "meal": data["meal"].value}
