"""
Booking Store
Append-only persistence of accepted bookings
"""
import logging
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker

from app.database import get_engine, get_session_factory, init_db
from app.errors import StorageUnavailable
from app.models import Booking
from app.schemas import BookingRecord

logger = logging.getLogger(__name__)

STORAGE_ERRORS = (SQLAlchemyError, OSError)


class BookingStore:
    """Writes one row per accepted booking; offers no update, delete or read"""

    def __init__(self, engine: AsyncEngine, session_factory: Optional[async_sessionmaker] = None):
        self.engine = engine
        self.session_factory = session_factory or get_session_factory(engine)

    @classmethod
    def from_url(cls, database_url: str) -> "BookingStore":
        return cls(get_engine(database_url))

    async def create_schema(self) -> None:
        try:
            await init_db(self.engine)
        except STORAGE_ERRORS as e:
            raise StorageUnavailable(f"Database unavailable: {e}") from e

    async def insert(self, record: BookingRecord) -> int:
        """
        Insert one booking in its own transaction.

        Args:
            record: Validated, sanitized booking

        Returns:
            Generated booking id

        Raises:
            StorageUnavailable: the database could not be reached or the
                write was rejected; nothing is written in that case
        """
        booking = Booking(
            order_id=record.order_id,
            call_type=record.call_type,
            start_time=record.start_time,
            end_time=record.end_time,
            duration=record.duration,
            user_id=record.user_id,
            user_email=record.user_email,
            price=record.price,
            order_status=record.order_status,
            rejection_reason=record.rejection_reason,
            created=record.created or datetime.now(timezone.utc).replace(tzinfo=None),
            confirmed=record.confirmed,
        )
        try:
            async with self.session_factory() as session:
                async with session.begin():
                    session.add(booking)
        except STORAGE_ERRORS as e:
            logger.error("store.insert_failed", extra={"order_id": record.order_id, "error": str(e)})
            raise StorageUnavailable(f"Failed to save booking: {e}") from e

        logger.info("store.inserted", extra={"booking_id": booking.id, "order_id": record.order_id})
        return booking.id

    async def ping(self) -> bool:
        """True when the database answers a trivial query"""
        try:
            async with self.engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
        except STORAGE_ERRORS as e:
            logger.warning("store.ping_failed", extra={"error": str(e)})
            return False
        return True

    async def close(self) -> None:
        await self.engine.dispose()
