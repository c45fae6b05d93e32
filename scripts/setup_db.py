"""
Database setup script: create tables, the default admin and establishments

Usage:
    python scripts/setup_db.py ["Institut A" "Institut B" ...]
"""
import asyncio
import sys
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from cafeteria.config import get_settings
from cafeteria.database import engine, AsyncSessionLocal, create_tables
from cafeteria.main import seed_defaults

settings = get_settings()


async def setup_database(extra_establishments):
    """Create tables and seed initial data"""
    print("Creating database tables...")
    await create_tables()
    print("Tables created")

    if extra_establishments:
        settings.DEFAULT_ESTABLISHMENTS = [*settings.DEFAULT_ESTABLISHMENTS, *extra_establishments]

    async with AsyncSessionLocal() as session:
        await seed_defaults(session)
    print("Seed data created")
    await engine.dispose()

    print("\nDatabase setup complete!")
    print("\nDefault login (password change required on first login):")
    print(f"  Username: {settings.DEFAULT_ADMIN_USERNAME}")
    print(f"  Password: {settings.DEFAULT_ADMIN_PASSWORD}")


if __name__ == "__main__":
    asyncio.run(setup_database(sys.argv[1:]))
