#!/usr/bin/env python3
"""Setup script for the bus ticket seat hold API: migrate and seed sample trips."""

import asyncio
import logging
from datetime import datetime, timedelta
from decimal import Decimal
from pathlib import Path

from alembic import command
from alembic.config import Config
from sqlalchemy import func, select

from busticket.core.database import async_session_factory, close_db
from busticket.models import Bus, Trip

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

server_dir = Path(__file__).parent.parent / "server"

SEAT_ROWS = 10
SEAT_COLUMNS = 4


def run_migrations() -> None:
    """Upgrade the database schema to the latest revision."""
    alembic_cfg = Config(str(server_dir / "db" / "alembic.ini"))
    logger.info("Running database migrations...")
    command.upgrade(alembic_cfg, "head")
    logger.info("Database migrations completed")


def build_seat_layout(rows: int, columns: int) -> dict:
    """Seat layout with seats numbered A1, B1, C1, D1, A2, ... row by row."""
    seats = [
        {"number": f"{chr(ord('A') + column - 1)}{row}", "row": row, "column": column}
        for row in range(1, rows + 1)
        for column in range(1, columns + 1)
    ]
    return {"rows": rows, "columns": columns, "seats": seats}


async def create_sample_data() -> None:
    """Create a bus and a week of daily trips when the database is empty."""
    logger.info("Creating sample data...")

    async with async_session_factory() as db:
        existing = await db.scalar(select(func.count()).select_from(Bus))
        if existing:
            logger.info("Sample data already exists, skipping...")
            return

        bus = Bus(
            company_name="Northline Coaches",
            bus_number="NL-1042",
            total_seats=SEAT_ROWS * SEAT_COLUMNS,
            seat_layout=build_seat_layout(SEAT_ROWS, SEAT_COLUMNS),
        )
        db.add(bus)
        await db.flush()

        first_departure = datetime.utcnow().replace(hour=8, minute=0, second=0, microsecond=0) + timedelta(days=1)
        for day in range(7):
            departure = first_departure + timedelta(days=day)
            db.add(Trip(
                bus_id=bus.id,
                departure_time=departure,
                arrival_time=departure + timedelta(hours=6, minutes=30),
                price=Decimal("45.00"),
                is_open=True,
            ))

        await db.commit()
        logger.info("Sample data created successfully!")

    await close_db()


def main() -> None:
    logger.info("Starting seat hold API setup...")
    run_migrations()
    asyncio.run(create_sample_data())
    logger.info("Setup completed successfully!")
    logger.info("Start the API server with: cd server && uvicorn busticket.main:app --reload")


if __name__ == "__main__":
    main()
