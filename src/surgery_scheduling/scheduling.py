"""Surgery scheduling transactions: booking, starting, completing and cancelling.

A booking claims three resources at once: an operating theater, a doctor and
part of the patient's deposit. ``SurgeryScheduler.schedule`` takes their row
locks in a fixed order (theater, doctor, patient) inside one transaction so
concurrent bookings can never deadlock or double-assign a row, and any failure
rolls every claim back. ``complete`` and ``cancel`` undo the claims under the
surgery row lock, so at most one of them ever acts on a booking.
"""

import logging
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from decimal import Decimal, InvalidOperation
from typing import Callable, Sequence

from sqlalchemy.orm import Session

from .exceptions import (
    InsufficientFundsError,
    InvalidTransitionError,
    NoResourceAvailableError,
    ResourceBusyError,
    ValidationError,
)
from .locking import RowLockManager
from .models import (
    ACTIVE_STATUSES,
    MAX_MONEY,
    Doctor,
    OperatingTheater,
    Patient,
    SurgerySchedule,
    SurgeryStatus,
    TheaterStatus,
)
from .repositories import SurgeryScheduleRepository
from .transactions import TransactionCoordinator

logger = logging.getLogger(__name__)

# Tolerated clock skew between the caller building a request and validation.
SCHEDULE_GRACE = timedelta(minutes=1)
CENTS = Decimal("0.01")
RELATIONS = ("patient", "doctor", "operating_theater")


@dataclass(frozen=True)
class SurgeryRequest:
    patient_id: int
    doctor_id: int
    surgery_type: str
    scheduled_at: datetime
    estimated_duration: int
    deposit_required: Decimal
    notes: str | None = None


def _positive_id(value, field: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ValidationError(f"{field} must be a positive integer.")
    return value


def _to_money(value) -> Decimal:
    if isinstance(value, bool) or value is None:
        raise ValidationError("deposit_required must be a number.")
    try:
        amount = Decimal(str(value))
    except InvalidOperation as exc:
        raise ValidationError("deposit_required must be a number.") from exc
    if not amount.is_finite() or abs(amount) > MAX_MONEY:
        raise ValidationError(f"deposit_required must be a finite amount up to {MAX_MONEY}.")
    return amount.quantize(CENTS)


def validate_request(request: SurgeryRequest, now: datetime) -> SurgeryRequest:
    """Check a booking request and return it with normalized fields.

    Raises ValidationError before any database work happens.
    """
    _positive_id(request.patient_id, "patient_id")
    _positive_id(request.doctor_id, "doctor_id")

    if not isinstance(request.surgery_type, str) or not request.surgery_type.strip():
        raise ValidationError("surgery_type is required.")

    scheduled_at = request.scheduled_at
    if not isinstance(scheduled_at, datetime):
        raise ValidationError("scheduled_at must be a datetime.")
    if scheduled_at.tzinfo is not None:
        # Stored as naive local time.
        scheduled_at = scheduled_at.astimezone().replace(tzinfo=None)
    if scheduled_at < now - SCHEDULE_GRACE:
        raise ValidationError("scheduled_at cannot be in the past.")

    duration = request.estimated_duration
    if isinstance(duration, bool) or not isinstance(duration, int) or duration <= 0:
        raise ValidationError("estimated_duration must be a positive number of minutes.")

    deposit = _to_money(request.deposit_required)
    if deposit <= 0:
        raise ValidationError("deposit_required must be greater than zero.")

    notes = request.notes
    if notes is not None:
        notes = str(notes).strip() or None
    return replace(
        request,
        surgery_type=request.surgery_type.strip(),
        scheduled_at=scheduled_at,
        deposit_required=deposit,
        notes=notes,
    )


class SurgeryScheduler:
    """Books and releases theaters, doctors and deposits as single transactions."""

    def __init__(
        self,
        coordinator: TransactionCoordinator,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.coordinator = coordinator
        self.clock = clock

    # Booking
    def schedule(self, request: SurgeryRequest) -> SurgerySchedule:
        request = validate_request(request, self.clock())
        logger.info(
            "Scheduling %s for patient_id=%s doctor_id=%s",
            request.surgery_type,
            request.patient_id,
            request.doctor_id,
        )
        try:
            surgery = self.coordinator.run_atomic(lambda session: self._book(session, request))
        except Exception as exc:
            logger.warning(
                "Scheduling failed for patient_id=%s doctor_id=%s: %s",
                request.patient_id,
                request.doctor_id,
                exc,
            )
            raise
        logger.info(
            "Surgery %s scheduled in theater %s",
            surgery.id,
            surgery.operating_theater_id,
            extra={"surgery_id": surgery.id},
        )
        return surgery

    def _book(self, session: Session, request: SurgeryRequest) -> SurgerySchedule:
        locks = RowLockManager(session)

        theater = locks.lock_first(
            OperatingTheater,
            OperatingTheater.status == TheaterStatus.AVAILABLE,
            skip_locked=True,
        )
        if theater is None:
            raise NoResourceAvailableError("operating theater")
        theater.status = TheaterStatus.OCCUPIED
        logger.debug("Claimed theater %s", theater.id, extra={"theater_id": theater.id})

        doctor = locks.lock_for_update(Doctor, request.doctor_id, resource="doctor")
        if not doctor.is_available:
            raise ResourceBusyError("doctor", doctor.id)
        doctor.is_available = False

        patient = locks.lock_for_update(Patient, request.patient_id, resource="patient")
        if patient.deposit < request.deposit_required:
            raise InsufficientFundsError(patient.deposit, request.deposit_required)
        patient.deposit -= request.deposit_required

        return SurgeryScheduleRepository(session).create(
            patient=patient,
            doctor=doctor,
            operating_theater=theater,
            surgery_type=request.surgery_type,
            scheduled_at=request.scheduled_at,
            estimated_duration=request.estimated_duration,
            deposit_deducted=request.deposit_required,
            notes=request.notes,
        )

    # Transitions
    def start(self, surgery_id: int) -> SurgerySchedule:
        """Move a scheduled surgery into progress; its resources stay claimed."""

        def _start(session: Session) -> SurgerySchedule:
            surgery = self._lock_surgery(session, surgery_id, "start", {SurgeryStatus.SCHEDULED})
            surgery.status = SurgeryStatus.IN_PROGRESS
            return surgery

        surgery = self._transition(surgery_id, "start", _start)
        logger.info("Surgery %s started", surgery_id, extra={"surgery_id": surgery_id})
        return surgery

    def complete(self, surgery_id: int) -> SurgerySchedule:
        """Finish a surgery and free its theater and doctor; the deposit stays spent."""

        def _complete(session: Session) -> SurgerySchedule:
            surgery = self._lock_surgery(session, surgery_id, "complete", ACTIVE_STATUSES)
            self._release(session, surgery)
            surgery.status = SurgeryStatus.COMPLETED
            return surgery

        surgery = self._transition(surgery_id, "complete", _complete)
        logger.info("Surgery %s completed", surgery_id, extra={"surgery_id": surgery_id})
        return surgery

    def cancel(self, surgery_id: int) -> SurgerySchedule:
        """Cancel a scheduled surgery, free its resources and refund the deposit."""

        def _cancel(session: Session) -> SurgerySchedule:
            surgery = self._lock_surgery(session, surgery_id, "cancel", {SurgeryStatus.SCHEDULED})
            self._release(session, surgery)
            patient = RowLockManager(session).lock_for_update(
                Patient, surgery.patient_id, resource="patient"
            )
            patient.deposit += surgery.deposit_deducted
            logger.debug(
                "Refunded %s to patient %s",
                surgery.deposit_deducted,
                patient.id,
                extra={"patient_id": patient.id},
            )
            surgery.status = SurgeryStatus.CANCELLED
            return surgery

        surgery = self._transition(surgery_id, "cancel", _cancel)
        logger.info(
            "Surgery %s cancelled and deposit refunded", surgery_id, extra={"surgery_id": surgery_id}
        )
        return surgery

    def _transition(self, surgery_id: int, action: str, fn) -> SurgerySchedule:
        def _unit(session: Session) -> SurgerySchedule:
            surgery = fn(session)
            session.flush()
            # Load the relations while the row lock is still held.
            session.refresh(surgery, attribute_names=RELATIONS)
            return surgery

        try:
            return self.coordinator.run_atomic(_unit)
        except Exception as exc:
            logger.warning("Could not %s surgery %s: %s", action, surgery_id, exc)
            raise

    def _lock_surgery(self, session: Session, surgery_id: int, action: str, allowed) -> SurgerySchedule:
        surgery = RowLockManager(session).lock_for_update(
            SurgerySchedule, surgery_id, resource="surgery"
        )
        if surgery.status not in allowed:
            raise InvalidTransitionError(action, surgery.status.value)
        return surgery

    def _release(self, session: Session, surgery: SurgerySchedule) -> None:
        # Same order as booking: theater, then doctor.
        locks = RowLockManager(session)
        theater = locks.lock_for_update(
            OperatingTheater, surgery.operating_theater_id, resource="operating theater"
        )
        theater.status = TheaterStatus.AVAILABLE
        doctor = locks.lock_for_update(Doctor, surgery.doctor_id, resource="doctor")
        doctor.is_available = True

    # Queries
    def get_surgery(self, surgery_id: int) -> SurgerySchedule:
        return self.coordinator.run_atomic(
            lambda session: SurgeryScheduleRepository(session).get_detailed(surgery_id)
        )

    def list_surgeries(self, status: SurgeryStatus | None = None) -> Sequence[SurgerySchedule]:
        return self.coordinator.run_atomic(
            lambda session: SurgeryScheduleRepository(session).list(status=status)
        )

    def list_surgeries_by_doctor(self, doctor_id: int) -> Sequence[SurgerySchedule]:
        return self.coordinator.run_atomic(
            lambda session: SurgeryScheduleRepository(session).list(doctor_id=doctor_id)
        )

    def list_surgeries_by_patient(self, patient_id: int) -> Sequence[SurgerySchedule]:
        return self.coordinator.run_atomic(
            lambda session: SurgeryScheduleRepository(session).list(patient_id=patient_id)
        )
