"""SQLAlchemy ORM models for the surgery scheduling system."""

import enum
from datetime import datetime
from decimal import Decimal

from sqlalchemy import Boolean, DateTime, Enum, ForeignKey, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .db import Base


class TheaterStatus(str, enum.Enum):
    AVAILABLE = "Available"
    OCCUPIED = "Occupied"
    MAINTENANCE = "Maintenance"


class SurgeryStatus(str, enum.Enum):
    SCHEDULED = "Scheduled"
    IN_PROGRESS = "In Progress"
    COMPLETED = "Completed"
    CANCELLED = "Cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({SurgeryStatus.COMPLETED, SurgeryStatus.CANCELLED})
ACTIVE_STATUSES = frozenset({SurgeryStatus.SCHEDULED, SurgeryStatus.IN_PROGRESS})

# Money columns keep two decimal places; deposits are never floats.
Money = Numeric(12, 2, asdecimal=True)
MAX_MONEY = Decimal("9999999999.99")


def _enum_values(enum_cls):
    return [member.value for member in enum_cls]


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.now, onupdate=datetime.now, nullable=False
    )


class Doctor(TimestampMixin, Base):
    __tablename__ = "doctors"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    contact_no: Mapped[str | None] = mapped_column(String(40), nullable=True)
    address: Mapped[str | None] = mapped_column(String(200), nullable=True)
    # Governed by the scheduling engine; false while attached to an active booking.
    is_available: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    surgeries: Mapped[list["SurgerySchedule"]] = relationship(
        "SurgerySchedule", back_populates="doctor"
    )
    patients: Mapped[list["Patient"]] = relationship("Patient", back_populates="doctor")

    def __repr__(self) -> str:
        return f"<Doctor id={self.id} name={self.name} available={self.is_available}>"


class Patient(TimestampMixin, Base):
    __tablename__ = "patients"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    contact_no: Mapped[str | None] = mapped_column(String(40), nullable=True)
    address: Mapped[str | None] = mapped_column(String(200), nullable=True)
    doctor_id: Mapped[int | None] = mapped_column(ForeignKey("doctors.id"), nullable=True)
    deposit: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal("0"))

    doctor: Mapped[Doctor | None] = relationship("Doctor", back_populates="patients")
    surgeries: Mapped[list["SurgerySchedule"]] = relationship(
        "SurgerySchedule", back_populates="patient"
    )

    def __repr__(self) -> str:
        return f"<Patient id={self.id} name={self.name} deposit={self.deposit}>"


class OperatingTheater(TimestampMixin, Base):
    __tablename__ = "operating_theaters"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    floor: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    capacity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    status: Mapped[TheaterStatus] = mapped_column(
        Enum(
            TheaterStatus,
            name="theater_status",
            native_enum=False,
            values_callable=_enum_values,
            validate_strings=True,
        ),
        nullable=False,
        default=TheaterStatus.AVAILABLE,
    )

    surgeries: Mapped[list["SurgerySchedule"]] = relationship(
        "SurgerySchedule", back_populates="operating_theater"
    )

    def __repr__(self) -> str:
        return f"<OperatingTheater id={self.id} name={self.name} status={self.status.value}>"


class SurgerySchedule(TimestampMixin, Base):
    __tablename__ = "surgery_schedules"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    patient_id: Mapped[int] = mapped_column(ForeignKey("patients.id"), nullable=False, index=True)
    doctor_id: Mapped[int] = mapped_column(ForeignKey("doctors.id"), nullable=False, index=True)
    operating_theater_id: Mapped[int] = mapped_column(
        ForeignKey("operating_theaters.id"), nullable=False
    )
    surgery_type: Mapped[str] = mapped_column(String(120), nullable=False)
    scheduled_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    estimated_duration: Mapped[int] = mapped_column(Integer, nullable=False)
    deposit_deducted: Mapped[Decimal] = mapped_column(Money, nullable=False)
    status: Mapped[SurgeryStatus] = mapped_column(
        Enum(
            SurgeryStatus,
            name="surgery_status",
            native_enum=False,
            values_callable=_enum_values,
            validate_strings=True,
        ),
        nullable=False,
        default=SurgeryStatus.SCHEDULED,
    )
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    patient: Mapped[Patient] = relationship("Patient", back_populates="surgeries")
    doctor: Mapped[Doctor] = relationship("Doctor", back_populates="surgeries")
    operating_theater: Mapped[OperatingTheater] = relationship(
        "OperatingTheater", back_populates="surgeries"
    )

    def __repr__(self) -> str:
        return (
            f"<SurgerySchedule id={self.id} patient_id={self.patient_id} "
            f"doctor_id={self.doctor_id} status={self.status.value}>"
        )
