from sqlalchemy import Boolean, Column, DateTime, Float, Integer, Numeric, String, Text, func
from app.database import Base


class Booking(Base):
    """Store booking submissions; rows are only ever appended"""
    __tablename__ = "bookings"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    # Not unique: a resubmitted order creates a second row
    order_id = Column(String(255), index=True, nullable=False)
    call_type = Column(String(100), nullable=False)
    start_time = Column(DateTime, nullable=False)
    end_time = Column(DateTime, nullable=False)
    duration = Column(Float, nullable=False)  # minutes
    user_id = Column(String(255), index=True, nullable=False)
    user_email = Column(String(255), nullable=True)
    price = Column(Numeric(10, 2), nullable=False)
    order_status = Column(String(50), nullable=True)
    rejection_reason = Column(Text, nullable=True)
    created = Column(DateTime, default=func.now(), nullable=False)
    confirmed = Column(Boolean, default=False, nullable=False)
