"""
Scan (meal redemption) endpoint
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Response
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from cafeteria.database import get_db
from cafeteria.models.user import User
from cafeteria.api.auth import require_scanner
from cafeteria.services.redemption import NOT_FOUND, scan
from cafeteria.utils.helpers import parse_ymd
from cafeteria.utils.validators import validate_matricule, validate_meal

logger = logging.getLogger(__name__)

router = APIRouter()


class ScanRequest(BaseModel):
    matricule: Optional[str] = None
    meal: Optional[str] = None
    date: Optional[str] = None
    consume: bool = False


@router.post("/")
async def scan_meal(
    data: ScanRequest,
    response: Response,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_scanner)
):
    """Verify a scanned matricule for a meal slot; `consume` redeems it"""
    try:
        matricule = validate_matricule(data.matricule)
        meal = validate_meal(data.meal)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    day = None
    if data.date:
        day = parse_ymd(data.date)
        if not day:
            raise HTTPException(status_code=400, detail="Invalid date, expected YYYY-MM-DD")

    result = await scan(db, matricule, meal=meal, day=day, consume=data.consume, scanner=current_user)
    if result["status"] == NOT_FOUND:
        response.status_code = 404
    return result
