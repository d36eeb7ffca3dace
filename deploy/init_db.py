#!/usr/bin/env python3
"""
Initialize database schema for production.
Run this once after provisioning the database (DB_CREATE_ALL=false in production).
"""
import asyncio
import os
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from sqlalchemy.ext.asyncio import create_async_engine

from retro.config import DEFAULT_DATABASE_URL
from retro.models import Base


async def init_db(database_url: str) -> None:
    """Create all tables."""
    engine = create_async_engine(database_url, echo=True)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    print("Database schema initialized successfully!")
    await engine.dispose()


if __name__ == "__main__":
    asyncio.run(init_db(os.getenv("DATABASE_URL", DEFAULT_DATABASE_URL)))
