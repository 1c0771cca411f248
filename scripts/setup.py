#!/usr/bin/env python3
"""Setup script for the travel booking API."""

import asyncio
import logging
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import jwt
from sqlalchemy import func, select

# Add the server directory to the Python path
server_dir = Path(__file__).parent.parent / "server"
sys.path.insert(0, str(server_dir))

from alembic import command
from alembic.config import Config
from booking_api.core.config import settings
from booking_api.core.database import async_session_factory
from booking_api.models import Hotel, RoomType, User

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def setup_database():
    """Bring the database schema to the latest revision."""
    logger.info("Running database migrations...")
    alembic_cfg = Config(str(server_dir / "db" / "alembic.ini"))
    alembic_cfg.set_main_option("script_location", str(server_dir / "db" / "alembic"))
    command.upgrade(alembic_cfg, "head")
    logger.info("Database migrations completed")


def issue_token(user: User, days: int = 30) -> str:
    """Bearer token for a seeded user."""
    payload = {
        "sub": str(user.id),
        "email": user.email,
        "exp": datetime.now(timezone.utc) + timedelta(days=days),
    }
    return jwt.encode(payload, settings.bearer_token_secret, algorithm="HS256")


async def create_sample_data():
    """Create a traveler, a hotel owner and one hotel with two room types."""
    logger.info("Creating sample data...")

    async with async_session_factory() as db:
        try:
            existing_users = await db.execute(select(func.count()).select_from(User))
            if existing_users.scalar() > 0:
                logger.info("Sample data already exists, skipping...")
                return

            traveler = User(
                email="traveler@example.com",
                first_name="Alex",
                last_name="Rivera",
                passport_number="X12345678",
            )
            owner = User(email="owner@example.com", first_name="Sam", last_name="Keller")
            db.add_all([traveler, owner])
            await db.flush()

            hotel = Hotel(owner_id=owner.id, name="Harbour View Hotel", address="1 Quay Street")
            db.add(hotel)
            await db.flush()

            db.add_all([
                RoomType(
                    hotel_id=hotel.id,
                    name="Standard Double",
                    price_per_night_amount=12000,
                    currency="USD",
                    base_availability=5,
                ),
                RoomType(
                    hotel_id=hotel.id,
                    name="Harbour Suite",
                    price_per_night_amount=32000,
                    currency="USD",
                    base_availability=2,
                ),
            ])
            await db.commit()
            logger.info("Sample data created successfully!")
        except Exception as e:
            await db.rollback()
            logger.error(f"Failed to create sample data: {e}")
            raise

    logger.info(f"Traveler token: {issue_token(traveler)}")
    logger.info(f"Hotel owner token: {issue_token(owner)}")
    logger.info(f"Hotel id: {hotel.id}")


async def main():
    """Main setup function."""
    logger.info("Starting travel booking API setup...")

    await asyncio.to_thread(setup_database)
    await create_sample_data()

    logger.info("Setup completed successfully!")
    logger.info("You can now start the API server with: cd server && uvicorn booking_api.main:app --reload")


if __name__ == "__main__":
    asyncio.run(main())
