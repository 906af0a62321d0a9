"""Record management for doctors, patients and operating theaters."""

import logging
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Sequence

from sqlalchemy.orm import Session

from .exceptions import ConflictError, ValidationError
from .locking import RowLockManager
from .models import MAX_MONEY, Doctor, OperatingTheater, Patient, SurgerySchedule, TheaterStatus
from .repositories import (
    DoctorRepository,
    OperatingTheaterRepository,
    PatientRepository,
    SurgeryScheduleRepository,
)

logger = logging.getLogger(__name__)

_UNSET = object()


def _required_name(name: str, label: str) -> str:
    if not isinstance(name, str) or not name.strip():
        raise ValidationError(f"{label} name cannot be empty.")
    return name.strip()


def _deposit(value) -> Decimal:
    try:
        amount = Decimal(str(value))
    except InvalidOperation as exc:
        raise ValidationError("Deposit must be a number.") from exc
    if not amount.is_finite() or amount < 0:
        raise ValidationError("Deposit cannot be negative.")
    if amount > MAX_MONEY:
        raise ValidationError(f"Deposit cannot exceed {MAX_MONEY}.")
    return amount.quantize(Decimal("0.01"))


def _theater_status(value) -> TheaterStatus:
    try:
        return TheaterStatus(value)
    except ValueError as exc:
        choices = ", ".join(status.value for status in TheaterStatus)
        raise ValidationError(f"Theater status must be one of: {choices}.") from exc


def _non_negative(value: int, label: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValidationError(f"{label} must be a non-negative integer.")
    return value


class HospitalService:
    """Facade over the entity repositories for the record-keeping screens.

    Works inside the caller's transaction. Updates lock the row first, the same
    way the scheduler does, so an edit can never interleave with a booking that
    holds the row. Fields the scheduler owns (``Doctor.is_available`` and the
    ``Occupied`` theater status) cannot be changed here.
    """

    def __init__(self, session: Session):
        self.session = session
        self.locks = RowLockManager(session)
        self.doctors = DoctorRepository(session)
        self.patients = PatientRepository(session)
        self.theaters = OperatingTheaterRepository(session)
        self.surgeries = SurgeryScheduleRepository(session)

    # Doctor
    def create_doctor(
        self, name: str, contact_no: str | None = None, address: str | None = None
    ) -> Doctor:
        doctor = self.doctors.create(
            name=_required_name(name, "Doctor"), contact_no=contact_no, address=address
        )
        logger.info("Doctor created with ID %s", doctor.id)
        return doctor

    def get_doctor(self, doctor_id: int) -> Doctor:
        return self.doctors.get(doctor_id)

    def list_doctors(self) -> Sequence[Doctor]:
        return self.doctors.list()

    def search_doctors(self, name: str) -> Sequence[Doctor]:
        return self.doctors.search_by_name(name)

    def update_doctor(
        self,
        doctor_id: int,
        name: str | None = None,
        contact_no=_UNSET,
        address=_UNSET,
    ) -> Doctor:
        doctor = self.locks.lock_for_update(Doctor, doctor_id, resource="doctor")
        if name is not None:
            doctor.name = _required_name(name, "Doctor")
        if contact_no is not _UNSET:
            doctor.contact_no = contact_no
        if address is not _UNSET:
            doctor.address = address
        return self.doctors.save(doctor)

    def delete_doctor(self, doctor_id: int) -> None:
        doctor = self.locks.lock_for_update(Doctor, doctor_id, resource="doctor")
        if self.surgeries.has_active(SurgerySchedule.doctor_id == doctor.id):
            raise ConflictError(f"Doctor {doctor_id} has an active surgery booking.")
        self.doctors.delete(doctor_id)
        logger.info("Doctor %s deleted", doctor_id)

    def check_doctor_availability(self, doctor_id: int, on_date: date) -> bool:
        """Report whether the doctor has no active surgery on ``on_date``."""
        self.doctors.get(doctor_id)
        return not self.surgeries.doctor_booked_on(doctor_id, on_date)

    # Patient
    def create_patient(
        self,
        name: str,
        contact_no: str | None = None,
        address: str | None = None,
        doctor_id: int | None = None,
        deposit=Decimal("0"),
    ) -> Patient:
        if doctor_id is not None:
            self.doctors.get(doctor_id)
        patient = self.patients.create(
            name=_required_name(name, "Patient"),
            contact_no=contact_no,
            address=address,
            doctor_id=doctor_id,
            deposit=_deposit(deposit),
        )
        logger.info("Patient created with ID %s", patient.id)
        return patient

    def get_patient(self, patient_id: int) -> Patient:
        return self.patients.get(patient_id)

    def list_patients(self) -> Sequence[Patient]:
        return self.patients.list()

    def search_patients(self, name: str) -> Sequence[Patient]:
        return self.patients.search_by_name(name)

    def list_patients_by_doctor(self, doctor_id: int) -> Sequence[Patient]:
        return self.patients.list_by_doctor(doctor_id)

    def update_patient(
        self,
        patient_id: int,
        name: str | None = None,
        contact_no=_UNSET,
        address=_UNSET,
        doctor_id=_UNSET,
        deposit=None,
    ) -> Patient:
        patient = self.locks.lock_for_update(Patient, patient_id, resource="patient")
        if name is not None:
            patient.name = _required_name(name, "Patient")
        if contact_no is not _UNSET:
            patient.contact_no = contact_no
        if address is not _UNSET:
            patient.address = address
        if doctor_id is not _UNSET:
            if doctor_id is not None:
                self.doctors.get(doctor_id)
            patient.doctor_id = doctor_id
        if deposit is not None:
            patient.deposit = _deposit(deposit)
        return self.patients.save(patient)

    def delete_patient(self, patient_id: int) -> None:
        patient = self.locks.lock_for_update(Patient, patient_id, resource="patient")
        if self.surgeries.has_active(SurgerySchedule.patient_id == patient.id):
            raise ConflictError(f"Patient {patient_id} has an active surgery booking.")
        self.patients.delete(patient_id)
        logger.info("Patient %s deleted", patient_id)

    # Operating theater
    def create_theater(
        self,
        name: str,
        floor: int = 0,
        capacity: int = 0,
        status: TheaterStatus = TheaterStatus.AVAILABLE,
    ) -> OperatingTheater:
        status = _theater_status(status)
        if status is TheaterStatus.OCCUPIED:
            raise ValidationError("A new operating theater cannot start out occupied.")
        theater = self.theaters.create(
            name=_required_name(name, "Operating theater"),
            floor=_non_negative(floor, "Floor"),
            capacity=_non_negative(capacity, "Capacity"),
            status=status,
        )
        logger.info("Operating theater created with ID %s", theater.id)
        return theater

    def get_theater(self, theater_id: int) -> OperatingTheater:
        return self.theaters.get(theater_id)

    def list_theaters(self) -> Sequence[OperatingTheater]:
        return self.theaters.list()

    def list_available_theaters(self) -> Sequence[OperatingTheater]:
        return self.theaters.list_available()

    def update_theater(
        self,
        theater_id: int,
        name: str | None = None,
        floor: int | None = None,
        capacity: int | None = None,
        status: TheaterStatus | None = None,
    ) -> OperatingTheater:
        theater = self.locks.lock_for_update(
            OperatingTheater, theater_id, resource="operating theater"
        )
        if name is not None:
            theater.name = _required_name(name, "Operating theater")
        if floor is not None:
            theater.floor = _non_negative(floor, "Floor")
        if capacity is not None:
            theater.capacity = _non_negative(capacity, "Capacity")
        if status is not None:
            status = _theater_status(status)
            if status is TheaterStatus.OCCUPIED or theater.status is TheaterStatus.OCCUPIED:
                if status is not theater.status:
                    raise ConflictError(
                        "Occupancy is managed by surgery bookings; "
                        "schedule, complete or cancel a surgery instead."
                    )
            theater.status = status
        return self.theaters.save(theater)

    def delete_theater(self, theater_id: int) -> None:
        theater = self.locks.lock_for_update(
            OperatingTheater, theater_id, resource="operating theater"
        )
        if theater.status is TheaterStatus.OCCUPIED:
            raise ConflictError(f"Operating theater {theater_id} is occupied.")
        self.theaters.delete(theater_id)
        logger.info("Operating theater %s deleted", theater_id)
