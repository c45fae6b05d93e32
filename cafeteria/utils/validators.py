"""
Input validation utilities
"""
from typing import Optional

from cafeteria.models.meal_plan import Meal
from cafeteria.models.person import PersonType


def validate_meal(value: Optional[str]) -> Optional[Meal]:
    """Accept a meal enum name in any case; empty means 'not given'"""
    if not value:
        return None
    try:
        return Meal(str(value).strip().upper())
    except ValueError:
        raise ValueError(f"Invalid meal. Must be one of: {', '.join(m.value for m in Meal)}")


def validate_person_type(value: Optional[str]) -> Optional[PersonType]:
    if not value:
        return None
    try:
        return PersonType(str(value).strip().upper())
    except ValueError:
        raise ValueError(f"Invalid type. Must be one of: {', '.join(t.value for t in PersonType)}")


def validate_matricule(value) -> str:
    matricule = str(value or "").strip()
    if not matricule:
        raise ValueError("Matricule is required")
    return matricule


def person_type_for_kind(kind: Optional[str]) -> PersonType:
    """Import 'kind' form field: 'staff' selects STAFF, anything else STUDENT"""
    return PersonType.STAFF if str(kind or "").strip().lower() == "staff" else PersonType.STUDENT
