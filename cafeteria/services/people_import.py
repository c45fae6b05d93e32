"""
People (students / staff) workbook import.

Every sheet is read; the header row is the first row (within the first
HEADER_SCAN_ROWS) that holds a matricule column. The student year comes from
the sheet name (L1/L2/L3 or French ordinals).
"""
import re
from dataclasses import dataclass
from typing import Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from cafeteria.models.establishment import Establishment
from cafeteria.models.person import Person, PersonType
from cafeteria.services.spreadsheet import SheetGrid
from cafeteria.utils.helpers import cell_to_str, clean_text, normalize_label, title_case
from cafeteria.utils.logger import get_logger

logger = get_logger(__name__)

HEADER_SCAN_ROWS = 20

COLUMN_SYNONYMS: Dict[str, tuple] = {
    "last_name": ("nom", "last name", "lastname", "nom de famille"),
    "first_name": ("prenom", "prenoms", "first name", "firstname"),
    "full_name": ("nom et prenom", "nom et prenoms", "nom prenom", "nom complet", "full name", "name"),
    "email": ("email", "e mail", "mail", "courriel"),
    "establishment": ("etablissement", "establishment", "institut", "ecole"),
}

_YEAR_PATTERNS = (
    (re.compile(r"\b(l1|premiere|1ere|1re|1er)\b"), 1),
    (re.compile(r"\b(l2|deuxieme|2eme|2e)\b"), 2),
    (re.compile(r"\b(l3|troisieme|3eme|3e)\b"), 3),
)


def year_from_sheet_name(name: str) -> Optional[int]:
    """'L2' -> 2, 'Deuxième année' -> 2, 'Feuil1' -> None"""
    key = normalize_label(name)
    for pattern, year in _YEAR_PATTERNS:
        if pattern.search(key):
            return year
    return None


def merge_name(first_name, last_name) -> str:
    return clean_text(" ".join(p for p in (title_case(first_name), title_case(last_name)) if p))


@dataclass
class HeaderMap:
    row: int
    columns: Dict[str, int]

    def get(self, grid: SheetGrid, r: int, field_name: str) -> str:
        c = self.columns.get(field_name)
        if c is None:
            return ""
        return cell_to_str(grid.value(r, c))


def find_header(grid: SheetGrid) -> Optional[HeaderMap]:
    for r in range(min(HEADER_SCAN_ROWS, grid.n_rows)):
        labels = [normalize_label(grid.value(r, c)) for c in range(grid.n_cols)]
        matricule_cols = [c for c, label in enumerate(labels) if "matricule" in label.split()]
        if not matricule_cols:
            continue
        columns = {"matricule": matricule_cols[0]}
        # Exact labels only, so "nom" never claims "nom et prenom"
        for field_name, synonyms in COLUMN_SYNONYMS.items():
            for c, label in enumerate(labels):
                if label in synonyms and c not in columns.values():
                    columns[field_name] = c
                    break
        return HeaderMap(row=r, columns=columns)
    return None


def person_name(grid: SheetGrid, r: int, header: HeaderMap) -> str:
    full = header.get(grid, r, "full_name")
    if full:
        return title_case(full)
    return merge_name(header.get(grid, r, "first_name"), header.get(grid, r, "last_name"))


async def upsert_establishment(db: AsyncSession, name: str) -> Establishment:
    name = clean_text(name)
    result = await db.execute(select(Establishment).where(Establishment.name == name))
    establishment = result.scalar_one_or_none()
    if not establishment:
        establishment = Establishment(name=name)
        db.add(establishment)
        await db.flush()
    return establishment


async def import_people(
    db: AsyncSession,
    sheets: List[SheetGrid],
    person_type: PersonType = PersonType.STUDENT,
    establishment_id: Optional[int] = None,
    email_domain: Optional[str] = None,
    allow_establishment_names: bool = True,
    reassign_existing: bool = True,
) -> dict:
    """Upsert people keyed by matricule from every sheet of a workbook.

    `establishment_id` pins every row to one establishment (managers always
    import into their own). Otherwise, when `allow_establishment_names` is
    set, an establishment column is upserted by name.

    Without `reassign_existing`, a matricule already registered in another
    establishment is reported and left untouched.
    """
    email_domain = (email_domain or "").strip().lstrip("@").lower()
    summary = {"sheets": 0, "rows": 0, "created": 0, "updated": 0, "skipped": 0, "issues": []}

    for grid in sheets:
        header = find_header(grid)
        if header is None:
            if not grid.is_blank():
                summary["issues"].append({"sheet": grid.name, "reason": "No 'matricule' column found"})
            continue

        summary["sheets"] += 1
        student_year = year_from_sheet_name(grid.name) if person_type == PersonType.STUDENT else None

        for r in range(header.row + 1, grid.n_rows):
            if all(cell.is_empty for cell in grid.rows[r]):
                continue
            summary["rows"] += 1

            matricule = header.get(grid, r, "matricule")
            name = person_name(grid, r, header) or matricule
            if not matricule:
                summary["skipped"] += 1
                summary["issues"].append({"sheet": grid.name, "row": r + 1, "reason": "Missing matricule"})
                continue

            email = header.get(grid, r, "email").lower() or None
            if not email and email_domain:
                email = f"{matricule}@{email_domain}"

            try:
                target_establishment = establishment_id
                if target_establishment is None and allow_establishment_names:
                    est_name = header.get(grid, r, "establishment")
                    if est_name:
                        target_establishment = (await upsert_establishment(db, est_name)).id

                result = await db.execute(select(Person).where(Person.matricule == matricule))
                person = result.scalar_one_or_none()
                if (
                    person
                    and not reassign_existing
                    and person.establishment_id is not None
                    and target_establishment is not None
                    and person.establishment_id != target_establishment
                ):
                    summary["skipped"] += 1
                    summary["issues"].append({
                        "sheet": grid.name, "row": r + 1, "matricule": matricule,
                        "reason": "Matricule belongs to another establishment",
                    })
                    continue
                if person:
                    person.name = name
                    person.type = person_type
                    if email:
                        person.email = email
                    if target_establishment is not None:
                        person.establishment_id = target_establishment
                    if student_year is not None:
                        person.student_year = student_year
                    created = False
                else:
                    db.add(Person(
                        matricule=matricule,
                        name=name,
                        email=email,
                        establishment_id=target_establishment,
                        type=person_type,
                        student_year=student_year,
                    ))
                    created = True
                await db.commit()
            except IntegrityError as e:
                await db.rollback()
                summary["skipped"] += 1
                summary["issues"].append({
                    "sheet": grid.name, "row": r + 1, "matricule": matricule, "reason": str(e.orig),
                })
                continue

            summary["created" if created else "updated"] += 1

    logger.info(
        f"People import ({person_type.value}): sheets={summary['sheets']} rows={summary['rows']} "
        f"created={summary['created']} updated={summary['updated']} skipped={summary['skipped']}"
    )
    return summary
