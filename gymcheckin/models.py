# gymcheckin/models.py
from sqlalchemy import Column, Integer, String, DateTime, Date, ForeignKey, Enum, Index
from sqlalchemy.orm import relationship
from datetime import datetime
import enum
from gymcheckin.database import Base


class FacilityType(str, enum.Enum):
    GYM = "GYM"
    TRAINING = "TRAINING"


class CheckinStatus(str, enum.Enum):
    PENDING = "PENDING"
    PAID = "PAID"
    USED = "USED"
    EXPIRED = "EXPIRED"
    CANCELLED = "CANCELLED"


# Allowed status moves. PENDING -> PENDING is how the payment reference is
# attached without changing status; USED/EXPIRED/CANCELLED are terminal.
ALLOWED_TRANSITIONS = {
    CheckinStatus.PENDING: {CheckinStatus.PENDING, CheckinStatus.PAID, CheckinStatus.CANCELLED},
    CheckinStatus.PAID: {CheckinStatus.USED, CheckinStatus.EXPIRED},
    CheckinStatus.USED: set(),
    CheckinStatus.EXPIRED: set(),
    CheckinStatus.CANCELLED: set(),
}

TERMINAL_STATUSES = {CheckinStatus.USED, CheckinStatus.EXPIRED, CheckinStatus.CANCELLED}


class User(Base):
    __tablename__ = "users"
    id = Column(Integer, primary_key=True, index=True)
    external_identity_id = Column(String(100), unique=True, index=True, nullable=False)  # LINE userId
    display_name = Column(String(200), nullable=False)
    picture_url = Column(String(500), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow)

    checkins = relationship("Checkin", back_populates="user")


class Checkin(Base):
    __tablename__ = "checkins"
    id = Column(String(32), primary_key=True)  # uuid4 hex, also the gateway orderId
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    facility_type = Column(Enum(FacilityType, name="facility_type"), nullable=False)
    date = Column(Date, nullable=False)
    start_time = Column(String(5), nullable=False)  # "HH:MM", hour aligned
    duration = Column(Integer, nullable=False)  # hours
    total_price = Column(Integer, nullable=False)
    pin_code = Column(String(4), nullable=True)
    payment_reference = Column(String(100), nullable=True)  # gateway transactionId
    status = Column(Enum(CheckinStatus, name="checkin_status"), nullable=False, default=CheckinStatus.PENDING)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow)

    user = relationship("User", back_populates="checkins")

    __table_args__ = (
        Index("ix_checkins_user_created", "user_id", "created_at"),
    )
