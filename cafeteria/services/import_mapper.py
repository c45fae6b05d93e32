"""
Meal-plan spreadsheet import.

Finds the plan columns of an uploaded sheet heuristically, then upserts one
planned MealPlan row per checked cell.

Two header layouts are understood:

* two rows: a row of dates (Excel serials or date strings, possibly merged
  over several columns) above a row of meal names;
* one flat row of "<date> <meal>" labels, e.g. "2025-03-05 Déjeuner".

People are identified by a matricule column, else a column that looks like
numeric ids, else an email column whose numeric local part is the matricule.
"""
import re
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Dict, List, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from cafeteria.models.meal_plan import Meal, MealPlan
from cafeteria.models.person import Person, PersonType
from cafeteria.services.errors import BadRequest
from cafeteria.services.spreadsheet import Cell, SheetGrid
from cafeteria.utils.helpers import cell_to_str, normalize_label, strip_accents
from cafeteria.utils.logger import get_logger

logger = get_logger(__name__)

HEADER_SCAN_ROWS = 10
MIN_TWO_ROW_COLUMNS = 2

# Numeric-id column guess
NUMERIC_ID_RE = re.compile(r"^\d{3,10}$")
NUMERIC_ID_MIN_SAMPLES = 10
NUMERIC_ID_MIN_RATIO = 0.5
NUMERIC_ID_MAX_SAMPLES = 50

EXCEL_EPOCH = date(1899, 12, 30)
EXCEL_MAX_SERIAL = 2958465  # 9999-12-31

TRUTHY = {"1", "true", "x", "vrai", "oui", "yes", "y", "✓"}

MEAL_SYNONYMS: Dict[str, Meal] = {
    # breakfast
    "petit dejeuner": Meal.PETIT_DEJEUNER,
    "petit dej": Meal.PETIT_DEJEUNER,
    "pt dej": Meal.PETIT_DEJEUNER,
    "ptdejeuner": Meal.PETIT_DEJEUNER,
    "pdj": Meal.PETIT_DEJEUNER,
    "p dj": Meal.PETIT_DEJEUNER,
    "p dej": Meal.PETIT_DEJEUNER,
    "breakfast": Meal.PETIT_DEJEUNER,
    # lunch ("repas" on some campus sheets)
    "dejeuner": Meal.DEJEUNER,
    "dej": Meal.DEJEUNER,
    "dejeune": Meal.DEJEUNER,
    "repas": Meal.DEJEUNER,
    "lunch": Meal.DEJEUNER,
    # dinner
    "diner": Meal.DINER,
    "din": Meal.DINER,
    "soir": Meal.DINER,
    "dinner": Meal.DINER,
    "souper": Meal.DINER,
}

# Checked in order: "petit dejeuner" must not fall through to lunch
MEAL_PREFIXES = (
    ("petit", Meal.PETIT_DEJEUNER),
    ("dej", Meal.DEJEUNER),
    ("din", Meal.DINER),
)

MATRICULE_SYNONYMS = {
    "matricule", "n matricule", "numero matricule", "no matricule", "num matricule",
    "num etudiant", "n etudiant", "numero etudiant", "id etudiant", "mat",
}
EMAIL_SYNONYMS = {"email", "e mail", "mail", "courriel", "adresse email", "adresse mail"}

_YMD_RE = re.compile(r"^(\d{4})[/-](\d{1,2})[/-](\d{1,2})$")
_DMY_RE = re.compile(r"^(\d{1,2})[/.-](\d{1,2})[/.-](\d{4})$")
_FALLBACK_FORMATS = ("%d %B %Y", "%d %b %Y", "%B %d %Y", "%b %d %Y", "%B %d, %Y", "%b %d, %Y")


# ──────────────────────────────────────────────────────
#  Cell interpretation
# ──────────────────────────────────────────────────────

def excel_serial_to_date(serial: float) -> Optional[date]:
    """Excel 1900 date system (epoch 1899-12-30)"""
    if serial < 1 or serial > EXCEL_MAX_SERIAL:
        return None
    return EXCEL_EPOCH + timedelta(days=round(serial))


def _safe_date(year, month, day) -> Optional[date]:
    try:
        return date(int(year), int(month), int(day))
    except ValueError:
        return None


def parse_date_text(text: str) -> Optional[date]:
    """yyyy-mm-dd, yyyy/A/B (A or B is the month), dd-mm-yyyy, then loose formats"""
    text = str(text).strip()
    if not text:
        return None

    m = _YMD_RE.match(text)
    if m:
        y, a, b = m.groups()
        if int(a) > 12:
            return _safe_date(y, b, a)
        return _safe_date(y, a, b)

    m = _DMY_RE.match(text)
    if m:
        d, mo, y = m.groups()
        return _safe_date(y, mo, d)

    try:
        return datetime.fromisoformat(text).date()
    except ValueError:
        pass
    for fmt in _FALLBACK_FORMATS:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    return None


def cell_date(cell: Cell) -> Optional[date]:
    """The date a header cell stands for, None when it is not date-like"""
    value = cell.value
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if cell.numeric and isinstance(value, (int, float)):
        return excel_serial_to_date(value)
    if isinstance(value, str):
        return parse_date_text(value)
    return None


def meal_from_label(value) -> Optional[Meal]:
    """Exact synonym first, then word prefixes ('Déjeuner midi', 'Dîner 19h')"""
    key = normalize_label(value)
    if not key:
        return None
    if key in MEAL_SYNONYMS:
        return MEAL_SYNONYMS[key]
    words = key.split()
    for prefix, meal in MEAL_PREFIXES:
        if any(w.startswith(prefix) for w in words):
            return meal
    return None


def is_checked(value) -> bool:
    if value is True:
        return True
    if value is False or value is None:
        return False
    if isinstance(value, (int, float)):
        return value == 1
    text = strip_accents(str(value)).strip().lower()
    return text in TRUTHY or normalize_label(text) in TRUTHY


def derive_matricule_from_email(value) -> Optional[str]:
    """'12345@school.mr' -> '12345'; non-numeric local parts are rejected"""
    text = cell_to_str(value)
    local, sep, _ = text.partition("@")
    if sep and local.isdigit():
        return local
    return None


# ──────────────────────────────────────────────────────
#  Header detection
# ──────────────────────────────────────────────────────

@dataclass(frozen=True)
class PlanColumn:
    col: int
    day: date
    meal: Meal


@dataclass
class PlanLayout:
    plan_columns: List[PlanColumn]
    id_column: int
    id_kind: str  # "matricule" | "numeric_guess" | "email"
    email_column: Optional[int]
    data_start_row: int
    low_confidence: bool = False


def _is_flat_label(value) -> bool:
    """'<date> <meal>' labels belong to a flat header, not to a row of meal names"""
    if not isinstance(value, str):
        return False
    tokens = value.split()
    return len(tokens) >= 2 and parse_date_text(tokens[0]) is not None


def detect_two_row_header(grid: SheetGrid) -> Tuple[List[PlanColumn], Optional[int]]:
    """Dates on row r, meal names on row r+1. Returns (columns, meal row)"""
    n_cols = grid.n_cols
    for r in range(min(HEADER_SCAN_ROWS, grid.n_rows - 1)):
        dates = {}
        for c in range(n_cols):
            d = cell_date(grid.cell(r, c))
            if d:
                dates[c] = d
        if not dates:
            continue

        columns = []
        date_cols = sorted(dates)
        for c in range(n_cols):
            label = grid.value(r + 1, c)
            if _is_flat_label(label):
                continue
            meal = meal_from_label(label)
            if not meal:
                continue
            # A merged date header spans every column up to the next date
            owners = [dc for dc in date_cols if dc <= c]
            if not owners:
                continue
            columns.append(PlanColumn(c, dates[owners[-1]], meal))

        if len(columns) >= MIN_TWO_ROW_COLUMNS:
            return columns, r + 1
    return [], None


def detect_flat_header(grid: SheetGrid) -> Tuple[List[PlanColumn], Optional[int]]:
    """Single row of '<date> <meal>' labels. Returns (columns, header row)"""
    for r in range(min(HEADER_SCAN_ROWS, grid.n_rows)):
        columns = []
        for c in range(grid.n_cols):
            value = grid.value(r, c)
            if not isinstance(value, str):
                continue
            tokens = value.split()
            if len(tokens) < 2:
                continue
            d = parse_date_text(tokens[0])
            meal = meal_from_label(" ".join(tokens[1:]))
            if d and meal:
                columns.append(PlanColumn(c, d, meal))
        if columns:
            return columns, r
    return [], None


def _find_labelled_column(grid: SheetGrid, last_row: int, synonyms: set) -> Tuple[Optional[int], Optional[int]]:
    for r in range(min(last_row, grid.n_rows - 1) + 1):
        for c in range(grid.n_cols):
            if normalize_label(grid.value(r, c)) in synonyms:
                return c, r
    return None, None


def _guess_numeric_id_column(grid: SheetGrid, first_data_row: int, excluded: set) -> Tuple[Optional[int], float]:
    for c in range(grid.n_cols):
        if c in excluded:
            continue
        samples = []
        for r in range(first_data_row, grid.n_rows):
            text = cell_to_str(grid.value(r, c))
            if text:
                samples.append(text)
            if len(samples) >= NUMERIC_ID_MAX_SAMPLES:
                break
        if len(samples) < NUMERIC_ID_MIN_SAMPLES:
            continue
        ratio = sum(1 for s in samples if NUMERIC_ID_RE.match(s)) / len(samples)
        if ratio >= NUMERIC_ID_MIN_RATIO:
            return c, ratio
    return None, 0.0


def detect_layout(grid: SheetGrid) -> PlanLayout:
    columns, header_bottom = detect_two_row_header(grid)
    if not columns:
        columns, header_bottom = detect_flat_header(grid)
    if not columns:
        raise BadRequest(
            "No 'date + meal' plan columns detected. Expected a row of dates above a row "
            "of meal names, or headers like '2025-03-05 Déjeuner'."
        )

    plan_cols = {p.col for p in columns}
    email_col, email_row = _find_labelled_column(grid, header_bottom, EMAIL_SYNONYMS)
    id_col, id_row = _find_labelled_column(grid, header_bottom, MATRICULE_SYNONYMS)

    if id_col is not None:
        return PlanLayout(
            plan_columns=columns,
            id_column=id_col,
            id_kind="matricule",
            email_column=email_col,
            data_start_row=max(header_bottom, id_row) + 1,
        )

    excluded = plan_cols | ({email_col} if email_col is not None else set())
    guess_col, ratio = _guess_numeric_id_column(grid, header_bottom + 1, excluded)
    if guess_col is not None:
        logger.warning(
            f"No matricule header found; guessed column {guess_col} as numeric ids "
            f"({ratio:.0%} of sampled values match). Low confidence."
        )
        return PlanLayout(
            plan_columns=columns,
            id_column=guess_col,
            id_kind="numeric_guess",
            email_column=email_col,
            data_start_row=header_bottom + 1,
            low_confidence=True,
        )

    if email_col is not None:
        return PlanLayout(
            plan_columns=columns,
            id_column=email_col,
            id_kind="email",
            email_column=email_col,
            data_start_row=max(header_bottom, email_row) + 1,
        )

    raise BadRequest("No matricule or email column detected")


# ──────────────────────────────────────────────────────
#  Row extraction
# ──────────────────────────────────────────────────────

@dataclass
class RowSelection:
    row: int  # 1-based sheet row
    matricule: str
    slots: List[Tuple[date, Meal]] = field(default_factory=list)


def _row_matricule(grid: SheetGrid, r: int, layout: PlanLayout) -> Optional[str]:
    if layout.id_kind != "email":
        matricule = cell_to_str(grid.value(r, layout.id_column))
        if matricule:
            return matricule
    if layout.email_column is not None:
        return derive_matricule_from_email(grid.value(r, layout.email_column))
    return None


def extract_selections(grid: SheetGrid, layout: PlanLayout) -> Tuple[List[RowSelection], List[dict]]:
    selections: List[RowSelection] = []
    issues: List[dict] = []

    for r in range(layout.data_start_row, grid.n_rows):
        if all(cell.is_empty for cell in grid.rows[r]):
            continue

        matricule = _row_matricule(grid, r, layout)
        if not matricule:
            issues.append({"row": r + 1, "reason": "Missing matricule"})
            continue

        slots = []
        seen = set()
        for col in layout.plan_columns:
            if not is_checked(grid.value(r, col.col)):
                continue
            key = (col.day, col.meal)
            if key not in seen:
                seen.add(key)
                slots.append(key)
        selections.append(RowSelection(row=r + 1, matricule=matricule, slots=slots))

    return selections, issues


# ──────────────────────────────────────────────────────
#  Persistence
# ──────────────────────────────────────────────────────

async def _load_people(
    db: AsyncSession,
    matricules: List[str],
    person_type: PersonType,
    establishment_id: Optional[int] = None,
) -> Dict[str, int]:
    if not matricules:
        return {}
    query = select(Person.id, Person.matricule).where(
        Person.matricule.in_(matricules),
        Person.type == person_type,
    )
    if establishment_id is not None:
        query = query.where(Person.establishment_id == establishment_id)
    result = await db.execute(query)
    return {row.matricule: row.id for row in result}


async def _upsert_row(db: AsyncSession, person_id: int, slots: List[Tuple[date, Meal]]) -> Tuple[int, int]:
    created = 0
    updated = 0
    for day, meal in slots:
        result = await db.execute(
            select(MealPlan).where(
                MealPlan.person_id == person_id,
                MealPlan.date == day,
                MealPlan.meal == meal,
            )
        )
        existing = result.scalar_one_or_none()
        if existing:
            existing.planned = True
            updated += 1
        else:
            db.add(MealPlan(person_id=person_id, date=day, meal=meal, planned=True))
            created += 1
    return created, updated


async def import_meal_plans(
    db: AsyncSession,
    grid: SheetGrid,
    person_type: PersonType = PersonType.STUDENT,
    establishment_id: Optional[int] = None,
) -> dict:
    """Upsert the checked plan cells of `grid`. Each row commits on its own.

    With `establishment_id`, matricules of people outside it count as unknown.
    """
    layout = detect_layout(grid)
    selections, issues = extract_selections(grid, layout)

    if not selections:
        raise BadRequest("No valid matricule found in the file")

    people = await _load_people(
        db, sorted({s.matricule for s in selections}), person_type, establishment_id
    )

    created = 0
    updated = 0
    for sel in selections:
        person_id = people.get(sel.matricule)
        if person_id is None:
            issues.append({
                "row": sel.row,
                "matricule": sel.matricule,
                "reason": f"Unknown matricule for type {person_type.value}",
            })
            continue
        if not sel.slots:
            continue

        try:
            row_created, row_updated = await _upsert_row(db, person_id, sel.slots)
            await db.commit()
        except IntegrityError:
            await db.rollback()
            issues.append({
                "row": sel.row,
                "matricule": sel.matricule,
                "reason": "Conflicting concurrent write, row skipped",
            })
            continue
        created += row_created
        updated += row_updated

    logger.info(
        f"Meal plan import ({person_type.value}): {len(layout.plan_columns)} plan columns, "
        f"{len(selections)} rows, created={created}, updated={updated}, issues={len(issues)}"
    )
    return {
        "ok": True,
        "created": created,
        "updated": updated,
        "total_rows": len(selections),
        "plan_columns": len(layout.plan_columns),
        "id_column": layout.id_kind,
        "low_confidence": layout.low_confidence,
        "issues": sorted(issues, key=lambda i: i["row"]),
    }
