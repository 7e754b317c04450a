#!/usr/bin/env python3
"""Setup script for the tour booking engine."""

import asyncio
import logging
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

# Add the server directory to the Python path
server_dir = Path(__file__).parent.parent / "server"
sys.path.insert(0, str(server_dir))

from alembic import command
from alembic.config import Config
from sqlalchemy import func, select

from tourdesk.core.database import async_session_factory, atomic, close_db
from tourdesk.models import Destination, Tour

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def setup_database():
    """Bring the database schema to the latest migration."""
    logger.info("Setting up database...")

    try:
        alembic_cfg = Config(str(server_dir / "db" / "alembic.ini"))
        alembic_cfg.set_main_option("script_location", str(server_dir / "db" / "alembic"))

        logger.info("Running database migrations...")
        command.upgrade(alembic_cfg, "head")
        logger.info("Database migrations completed")

    except Exception as e:
        logger.error(f"Database setup failed: {e}")
        raise


async def create_sample_data():
    """Create a destination with a few tours for local testing."""
    logger.info("Creating sample data...")

    async with async_session_factory() as db:
        existing_tours = await db.execute(select(func.count(Tour.id)))
        if existing_tours.scalar_one() > 0:
            logger.info("Sample data already exists, skipping...")
            return

        async with atomic(db):
            destination = Destination(
                name="Iceland",
                slug="iceland",
                description="Glaciers, geysers and the Aurora Borealis"
            )
            db.add(destination)
            await db.flush()  # Get the destination ID

            base_date = datetime.now(timezone.utc) + timedelta(days=30)
            samples = [
                ("Northern Lights Adventure", "northern-lights-adventure", 29999, 12),
                ("Golden Circle Day Trip", "golden-circle-day-trip", 8999, 40),
                ("Glacier Hike and Ice Cave", "glacier-hike-ice-cave", 17999, 8),
            ]
            for i, (title, slug, price, group_size) in enumerate(samples):
                db.add(Tour(
                    destination_id=destination.id,
                    title=title,
                    slug=slug,
                    next_tour_date=base_date + timedelta(days=i * 7),
                    price_amount=price,
                    price_currency="USD",
                    group_size=group_size,
                    available_seats=group_size
                ))

        logger.info("Sample data created successfully!")

    await close_db()


def main():
    """Main setup function."""
    logger.info("Starting tour booking engine setup...")

    # Alembic's env runs its own event loop, so migrate before entering ours
    setup_database()
    asyncio.run(create_sample_data())

    logger.info("Setup completed successfully!")
    logger.info("You can now start the API server with: cd server && uvicorn tourdesk.main:app --reload")


if __name__ == "__main__":
    main()
