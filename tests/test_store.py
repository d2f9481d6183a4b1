"""
Tests for booking persistence against SQLite
"""
from datetime import datetime

import pytest
from sqlalchemy import func, select

from app.errors import StorageUnavailable
from app.models import Booking
from app.services.store import BookingStore


@pytest.fixture
async def store(tmp_path):
    booking_store = BookingStore.from_url(f"sqlite+aiosqlite:///{tmp_path / 'bookings.db'}")
    await booking_store.create_schema()
    yield booking_store
    await booking_store.close()


async def count_rows(store, order_id=None):
    query = select(func.count(Booking.id))
    if order_id is not None:
        query = query.where(Booking.order_id == order_id)
    async with store.session_factory() as session:
        return (await session.execute(query)).scalar_one()


class TestBookingStore:
    """Test inserts"""

    async def test_insert_returns_generated_id(self, store, sample_record):
        booking_id = await store.insert(sample_record)

        assert isinstance(booking_id, int)
        assert await count_rows(store) == 1

    async def test_insert_persists_fields(self, store, sample_record):
        booking_id = await store.insert(sample_record)

        async with store.session_factory() as session:
            booking = await session.get(Booking, booking_id)

        assert booking.order_id == "A1"
        assert booking.call_type == "video"
        assert booking.start_time == datetime(2024, 1, 1, 10, 0)
        assert booking.end_time == datetime(2024, 1, 1, 10, 30)
        assert booking.duration == 30
        assert float(booking.price) == pytest.approx(49.99)
        assert booking.confirmed is False
        assert booking.created is not None

    async def test_client_supplied_created_is_kept(self, store, sample_record):
        record = sample_record.model_copy(
            update={"created": datetime(2023, 12, 31, 8, 0), "confirmed": True}
        )

        booking_id = await store.insert(record)

        async with store.session_factory() as session:
            booking = await session.get(Booking, booking_id)
        assert booking.created == datetime(2023, 12, 31, 8, 0)
        assert booking.confirmed is True

    async def test_duplicate_order_id_creates_two_rows(self, store, sample_record):
        first = await store.insert(sample_record)
        second = await store.insert(sample_record)

        assert first != second
        assert await count_rows(store, "A1") == 2

    async def test_ping(self, store):
        assert await store.ping() is True


class TestUnavailableStore:
    """Test failures when the database cannot be reached"""

    @pytest.fixture
    async def broken_store(self, tmp_path):
        booking_store = BookingStore.from_url(
            f"sqlite+aiosqlite:///{tmp_path / 'missing' / 'dir' / 'bookings.db'}"
        )
        yield booking_store
        await booking_store.close()

    async def test_insert_raises_storage_unavailable(self, broken_store, sample_record):
        with pytest.raises(StorageUnavailable):
            await broken_store.insert(sample_record)

    async def test_create_schema_raises_storage_unavailable(self, broken_store):
        with pytest.raises(StorageUnavailable):
            await broken_store.create_schema()

    async def test_ping_reports_false(self, broken_store):
        assert await broken_store.ping() is False
