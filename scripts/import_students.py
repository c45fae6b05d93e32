"""
Seed students (or staff) from a workbook, one sheet per study year.

Sheets named L1/L2/L3 (or "Première année", ...) set the student year.
Email defaults to <matricule>@<email-domain> when the file has none.

Usage:
    python scripts/import_students.py <file.xlsx> <establishment name> [email-domain] [--staff]

Example:
    python scripts/import_students.py ./List_ISMS_2025.xlsx ISMS isms.mr
"""
import asyncio
import sys
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from cafeteria.database import engine, AsyncSessionLocal, create_tables
from cafeteria.models.person import PersonType
from cafeteria.services.errors import DomainError
from cafeteria.services.people_import import import_people, upsert_establishment
from cafeteria.services.spreadsheet import read_workbook


async def main():
    args = [a for a in sys.argv[1:] if not a.startswith("--")]
    if len(args) < 2:
        print("Error: Missing arguments")
        print("\nUsage:")
        print("  python scripts/import_students.py <file.xlsx> <establishment name> [email-domain] [--staff]")
        sys.exit(1)

    path = Path(args[0])
    if not path.exists():
        print(f"Error: File not found at {path}")
        sys.exit(1)

    establishment_name = args[1]
    email_domain = args[2] if len(args) > 2 else None
    person_type = PersonType.STAFF if "--staff" in sys.argv else PersonType.STUDENT

    await create_tables()

    try:
        sheets = read_workbook(path.read_bytes(), path.name)
    except DomainError as e:
        print(f"Error: {e.message}")
        sys.exit(1)

    async with AsyncSessionLocal() as session:
        establishment = await upsert_establishment(session, establishment_name)
        await session.commit()

        print(f"Reading {path.name} -> {establishment.name} ({person_type.value})")
        for sheet in sheets:
            print(f"  sheet '{sheet.name}'")

        result = await import_people(
            session,
            sheets,
            person_type=person_type,
            establishment_id=establishment.id,
            email_domain=email_domain,
            allow_establishment_names=False,
        )

    await engine.dispose()

    print("\nDone.")
    print(f"  sheets={result['sheets']} rows={result['rows']} created={result['created']} "
          f"updated={result['updated']} skipped={result['skipped']}")
    for issue in result["issues"][:10]:
        print(f"  ! {issue}")


if __name__ == "__main__":
    asyncio.run(main())
