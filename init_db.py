"""Create the cafeteria tables. Pass --reset to drop and recreate them."""
import asyncio
import sys

from cafeteria.database import engine, Base, create_tables


async def init(reset: bool = False):
    await create_tables(drop_first=reset)
    await engine.dispose()
    if reset:
        print("Existing tables dropped.")
    print(f"Tables ready: {', '.join(sorted(Base.metadata.tables))}")


if __name__ == "__main__":
    asyncio.run(init(reset="--reset" in sys.argv[1:]))
