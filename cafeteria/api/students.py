"""
People (students / staff) API endpoints: CRUD, XLSX template and imports
"""
import io
import logging
from pathlib import Path
from typing import List, Optional
from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, UploadFile, File, Form, Query
from fastapi.responses import StreamingResponse
from openpyxl import Workbook
from pydantic import BaseModel
from sqlalchemy import select, func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from cafeteria.config import get_settings
from cafeteria.database import get_db
from cafeteria.models.user import User, UserRole
from cafeteria.models.person import Person, PersonType
from cafeteria.api.auth import require_manager, scoped_establishment_id
from cafeteria.services.people_import import import_people
from cafeteria.services.spreadsheet import read_workbook
from cafeteria.utils.validators import person_type_for_kind, validate_person_type

settings = get_settings()
logger = logging.getLogger(__name__)

router = APIRouter()

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

TEMPLATE_HEADERS = ["Matricule", "Nom", "Prénom", "Établissement", "Email"]
TEMPLATE_ROWS = [
    ["S0001", "Diop", "Awa", "Institut A", "awa.diop@example.com"],
    ["S0002", "Ba", "Moussa", "Institut B", "moussa.ba@example.com"],
]


class PersonResponse(BaseModel):
    id: int
    matricule: str
    name: str
    email: Optional[str] = None
    establishment_id: Optional[int] = None
    type: PersonType
    student_year: Optional[int] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class PersonPage(BaseModel):
    items: List[PersonResponse]
    total: int
    page: int
    page_size: int


class PersonCreate(BaseModel):
    matricule: str
    name: str
    email: Optional[str] = None
    establishment_id: Optional[int] = None
    type: PersonType = PersonType.STUDENT
    student_year: Optional[int] = None


class PersonUpdate(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    establishment_id: Optional[int] = None
    type: Optional[PersonType] = None
    student_year: Optional[int] = None


async def read_upload(file: UploadFile) -> bytes:
    """Read an uploaded file, enforcing MAX_UPLOAD_MB"""
    content = await file.read()
    max_bytes = settings.MAX_UPLOAD_MB * 1024 * 1024
    if len(content) > max_bytes:
        raise HTTPException(413, f"File too large. Maximum size: {settings.MAX_UPLOAD_MB}MB")
    if not content:
        raise HTTPException(400, "File is empty")
    return content


async def _get_scoped_person(db: AsyncSession, person_id: int, current_user: User) -> Person:
    result = await db.execute(select(Person).where(Person.id == person_id))
    person = result.scalar_one_or_none()
    if current_user.role != UserRole.ADMIN:
        scope = scoped_establishment_id(current_user)
        if not person or person.establishment_id != scope:
            raise HTTPException(status_code=403, detail="Forbidden")
    if not person:
        raise HTTPException(status_code=404, detail="Person not found")
    return person


@router.get("/", response_model=PersonPage)
async def list_people(
    search: str = "",
    type: Optional[str] = None,
    establishment_id: Optional[int] = None,
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=20, ge=1, le=200),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_manager)
):
    """List people with search on name, matricule and email"""
    query = select(Person)

    scope = scoped_establishment_id(current_user, establishment_id)
    if scope is not None:
        query = query.where(Person.establishment_id == scope)

    try:
        person_type = validate_person_type(type)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if person_type:
        query = query.where(Person.type == person_type)

    term = search.strip()
    if term:
        pattern = f"%{term}%"
        query = query.where(or_(
            Person.name.ilike(pattern),
            Person.matricule.ilike(pattern),
            Person.email.ilike(pattern),
        ))

    total = (await db.execute(select(func.count()).select_from(query.subquery()))).scalar() or 0
    result = await db.execute(
        query.order_by(Person.created_at.desc(), Person.id.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
    )
    return {"items": result.scalars().all(), "total": total, "page": page, "page_size": page_size}


@router.get("/template")
async def download_template(current_user: User = Depends(require_manager)):
    """XLSX template for the people import"""
    wb = Workbook()
    ws = wb.active
    ws.title = "Étudiants"
    ws.append(TEMPLATE_HEADERS)
    for row in TEMPLATE_ROWS:
        ws.append(row)

    buffer = io.BytesIO()
    wb.save(buffer)
    buffer.seek(0)
    return StreamingResponse(
        buffer,
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": 'attachment; filename="modele_etudiants.xlsx"'},
    )


@router.post("/", response_model=PersonResponse, status_code=201)
async def create_person(
    data: PersonCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_manager)
):
    matricule = data.matricule.strip()
    name = " ".join(data.name.split())
    if not matricule or not name:
        raise HTTPException(status_code=400, detail="Matricule and name are required")

    establishment_id = scoped_establishment_id(current_user, data.establishment_id)
    person = Person(
        matricule=matricule,
        name=name,
        email=(data.email or "").strip().lower() or None,
        establishment_id=establishment_id,
        type=data.type,
        student_year=data.student_year,
    )
    db.add(person)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise HTTPException(status_code=409, detail="Matricule already exists")
    await db.refresh(person)
    return person


@router.put("/{person_id}", response_model=PersonResponse)
async def update_person(
    person_id: int,
    data: PersonUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_manager)
):
    person = await _get_scoped_person(db, person_id, current_user)

    updates = data.model_dump(exclude_none=True)
    # Managers cannot move people out of their establishment
    if current_user.role != UserRole.ADMIN:
        updates.pop("establishment_id", None)
    for key, value in updates.items():
        setattr(person, key, value)

    await db.commit()
    await db.refresh(person)
    return person


@router.delete("/{person_id}")
async def delete_person(
    person_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_manager)
):
    person = await _get_scoped_person(db, person_id, current_user)
    await db.delete(person)
    await db.commit()
    return {"ok": True}


@router.post("/import")
async def import_people_file(
    file: UploadFile = File(...),
    establishment_id: Optional[int] = Form(default=None),
    email_domain: Optional[str] = Form(default=None),
    kind: Optional[str] = Form(default="student"),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_manager)
):
    """Import people from every sheet of an uploaded workbook"""
    content = await read_upload(file)
    sheets = read_workbook(content, file.filename)

    is_admin = current_user.role == UserRole.ADMIN
    result = await import_people(
        db,
        sheets,
        person_type=person_type_for_kind(kind),
        establishment_id=scoped_establishment_id(current_user, establishment_id),
        email_domain=email_domain,
        allow_establishment_names=is_admin,
        reassign_existing=is_admin,
    )
    logger.info(f"User {current_user.id} imported people from '{file.filename}'")
    return {"ok": True, **result}


@router.post("/import-from-folder")
async def import_people_from_folder(
    kind: Optional[str] = Form(default="student"),
    email_domain: Optional[str] = Form(default=None),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_manager)
):
    """Import every .xlsx file found in IMPORT_DIR"""
    if not settings.IMPORT_DIR:
        raise HTTPException(status_code=400, detail="Set IMPORT_DIR in .env")
    base = Path(settings.IMPORT_DIR)
    if not base.is_dir():
        raise HTTPException(status_code=400, detail=f"IMPORT_DIR not found: {base}")

    files = sorted(p for p in base.iterdir() if p.suffix.lower() == ".xlsx")
    is_admin = current_user.role == UserRole.ADMIN
    establishment_id = scoped_establishment_id(current_user)

    totals = {"files": len(files), "sheets": 0, "rows": 0, "created": 0, "updated": 0, "skipped": 0, "issues": []}
    for path in files:
        result = await import_people(
            db,
            read_workbook(path.read_bytes(), path.name),
            person_type=person_type_for_kind(kind),
            establishment_id=establishment_id,
            email_domain=email_domain,
            allow_establishment_names=is_admin,
            reassign_existing=is_admin,
        )
        for key in ("sheets", "rows", "created", "updated", "skipped"):
            totals[key] += result[key]
        totals["issues"].extend({"file": path.name, **issue} for issue in result["issues"])

    logger.info(f"Folder import from {base}: {totals['files']} files, {totals['created']} created")
    return {"ok": True, **totals}
