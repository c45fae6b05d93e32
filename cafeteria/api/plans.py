"""
Meal plan spreadsheet import endpoint
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, UploadFile, File, Form
from sqlalchemy.ext.asyncio import AsyncSession

from cafeteria.database import get_db
from cafeteria.models.user import User
from cafeteria.api.auth import require_manager, scoped_establishment_id
from cafeteria.api.students import read_upload
from cafeteria.services.import_mapper import import_meal_plans
from cafeteria.services.spreadsheet import read_first_sheet
from cafeteria.utils.validators import person_type_for_kind

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/import")
async def import_plans(
    file: UploadFile = File(...),
    kind: Optional[str] = Form(default="student"),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_manager)
):
    """Import planned meals from the first sheet of an XLSX / CSV file.

    `kind` ("student" or "staff") restricts which people the matricules resolve to.
    Managers only reach people of their own establishment.
    """
    content = await read_upload(file)
    grid = read_first_sheet(content, file.filename)
    person_type = person_type_for_kind(kind)
    scope = scoped_establishment_id(current_user)

    logger.info(f"User {current_user.id} importing {person_type.value} plans from '{file.filename}'")
    return await import_meal_plans(db, grid, person_type, establishment_id=scope)
