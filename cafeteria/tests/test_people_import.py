"""
People import tests - header search, year from sheet name, names and emails.
"""
import pytest
from sqlalchemy import select

from cafeteria.models.establishment import Establishment
from cafeteria.models.person import Person, PersonType
from cafeteria.services.people_import import import_people, merge_name, year_from_sheet_name
from cafeteria.services.spreadsheet import Cell, SheetGrid


def sheet(name, rows):
    return SheetGrid(name=name, rows=[[Cell(v) if v not in (None, "") else Cell() for v in row] for row in rows])


async def _person(db_session, matricule):
    result = await db_session.execute(select(Person).where(Person.matricule == matricule))
    return result.scalar_one_or_none()


@pytest.mark.parametrize("name,year", [
    ("L1", 1),
    ("l2", 2),
    ("Liste L3 2025", 3),
    ("Première année", 1),
    ("2ème année", 2),
    ("Troisième", 3),
    ("Feuil1", None),
    ("", None),
])
def test_year_from_sheet_name(name, year):
    assert year_from_sheet_name(name) == year


def test_merge_name_title_cases():
    assert merge_name("  awa  ", "DIOP") == "Awa Diop"
    assert merge_name("élodie", "") == "Élodie"


async def test_import_every_sheet_with_header_below_title(db_session, seed_data):
    sheets = [
        sheet("L2", [
            ["Liste des étudiants 2025"],
            [],
            ["N° Matricule", "Nom", "Prénom"],
            ["20001", "NDIAYE", "aminata"],
            ["20002", "fall", "IBRAHIMA"],
        ]),
        sheet("L3", [
            ["Matricule", "Nom et prénom", "Email"],
            ["30001", "cheikh sy", "Cheikh.Sy@Example.com"],
        ]),
    ]
    result = await import_people(
        db_session, sheets, establishment_id=seed_data["est_a"].id, email_domain="isms.mr",
    )

    assert result["sheets"] == 2
    assert result["created"] == 3
    assert result["issues"] == []

    first = await _person(db_session, "20001")
    assert first.name == "Aminata Ndiaye"
    assert first.email == "20001@isms.mr"
    assert first.student_year == 2
    assert first.type == PersonType.STUDENT

    third = await _person(db_session, "30001")
    assert third.name == "Cheikh Sy"
    assert third.email == "cheikh.sy@example.com"
    assert third.student_year == 3


async def test_existing_person_is_updated(db_session, seed_data):
    result = await import_people(
        db_session,
        [sheet("L3", [["Matricule", "Nom", "Prénom"], ["12345", "Diop", "Awa Marie"]])],
    )
    assert result["created"] == 0
    assert result["updated"] == 1

    person = await _person(db_session, "12345")
    assert person.name == "Awa Marie Diop"
    assert person.student_year == 3
    # Untouched when the file has no establishment
    assert person.establishment_id == seed_data["est_a"].id


async def test_establishment_column_is_upserted(db_session, seed_data):
    rows = [
        ["Matricule", "Nom", "Prénom", "Établissement"],
        ["40001", "Ba", "Moussa", "Institut C"],
        ["40002", "Ka", "Binta", "Institut A"],
    ]
    await import_people(db_session, [sheet("Feuil1", rows)])

    result = await db_session.execute(select(Establishment).where(Establishment.name == "Institut C"))
    institut_c = result.scalar_one()
    assert (await _person(db_session, "40001")).establishment_id == institut_c.id
    assert (await _person(db_session, "40002")).establishment_id == seed_data["est_a"].id


async def test_establishment_names_ignored_when_not_allowed(db_session, seed_data):
    rows = [["Matricule", "Nom", "Établissement"], ["40003", "Sow", "Institut Z"]]
    await import_people(
        db_session, [sheet("Feuil1", rows)],
        establishment_id=seed_data["est_b"].id, allow_establishment_names=False,
    )

    assert (await _person(db_session, "40003")).establishment_id == seed_data["est_b"].id
    result = await db_session.execute(select(Establishment).where(Establishment.name == "Institut Z"))
    assert result.scalar_one_or_none() is None


async def test_pinned_import_without_reassign_skips_foreign_matricule(db_session, seed_data):
    est_a_id = seed_data["est_a"].id
    est_b_id = seed_data["est_b"].id
    rows = [["Matricule", "Nom"], ["67890", "Autre"], ["12345", "Diop"]]
    result = await import_people(
        db_session, [sheet("L1", rows)],
        establishment_id=est_a_id, allow_establishment_names=False, reassign_existing=False,
    )

    assert (result["updated"], result["skipped"]) == (1, 1)
    assert result["issues"] == [{
        "sheet": "L1", "row": 2, "matricule": "67890", "reason": "Matricule belongs to another establishment",
    }]
    other = await _person(db_session, "67890")
    assert (other.name, other.establishment_id) == ("Fatou Sall", est_b_id)


async def test_missing_matricule_and_headerless_sheet(db_session, seed_data):
    sheets = [
        sheet("Notes", [["Nom", "Prénom"], ["Diop", "Awa"]]),
        sheet("L1", [["Matricule", "Nom"], ["", "Sans Matricule"], ["10001", "Gueye"]]),
    ]
    result = await import_people(db_session, sheets)

    assert result["sheets"] == 1
    assert result["rows"] == 2
    assert result["created"] == 1
    assert result["skipped"] == 1
    reasons = [i["reason"] for i in result["issues"]]
    assert "No 'matricule' column found" in reasons
    assert "Missing matricule" in reasons


async def test_staff_kind_has_no_student_year(db_session, seed_data):
    await import_people(
        db_session, [sheet("L2", [["Matricule", "Nom"], ["S901", "Diallo"]])], person_type=PersonType.STAFF,
    )
    person = await _person(db_session, "S901")
    assert person.type == PersonType.STAFF
    assert person.student_year is None
