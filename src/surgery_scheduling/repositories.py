"""Data access layer built on SQLAlchemy sessions."""

from datetime import date, datetime, time, timedelta
from decimal import Decimal
from typing import Sequence

from sqlalchemy import exists, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from . import models
from .exceptions import ConflictError, ResourceNotFoundError


class _Repository:
    """Shared get/find/save/delete over one mapped class."""

    model: type[models.Base]
    resource: str

    def __init__(self, session: Session):
        self.session = session

    def get(self, ident: int):
        row = self.session.get(self.model, ident)
        if row is None:
            raise ResourceNotFoundError(self.resource, ident)
        return row

    def find(self, *criteria) -> Sequence:
        stmt = select(self.model).where(*criteria).order_by(self.model.id)
        return self.session.scalars(stmt).all()

    def list(self) -> Sequence:
        return self.find()

    def save(self, row):
        try:
            self.session.add(row)
            self.session.flush()
        except IntegrityError as exc:
            raise ConflictError(f"Could not save {self.resource} {row.id}.") from exc
        return row

    def delete(self, ident: int) -> None:
        row = self.get(ident)
        try:
            self.session.delete(row)
            self.session.flush()
        except IntegrityError as exc:
            raise ConflictError(f"{self.resource.capitalize()} {ident} is still referenced.") from exc


class DoctorRepository(_Repository):
    """CRUD operations for Doctor."""

    model = models.Doctor
    resource = "doctor"

    def create(
        self,
        name: str,
        contact_no: str | None = None,
        address: str | None = None,
    ) -> models.Doctor:
        doctor = models.Doctor(name=name, contact_no=contact_no, address=address, is_available=True)
        self.session.add(doctor)
        self.session.flush()
        return doctor

    def search_by_name(self, name: str) -> Sequence[models.Doctor]:
        return self.find(models.Doctor.name.contains(name, autoescape=True))


class PatientRepository(_Repository):
    """CRUD operations for Patient."""

    model = models.Patient
    resource = "patient"

    def create(
        self,
        name: str,
        contact_no: str | None = None,
        address: str | None = None,
        doctor_id: int | None = None,
        deposit: Decimal = Decimal("0"),
    ) -> models.Patient:
        patient = models.Patient(
            name=name,
            contact_no=contact_no,
            address=address,
            doctor_id=doctor_id,
            deposit=deposit,
        )
        self.session.add(patient)
        self.session.flush()
        return patient

    def search_by_name(self, name: str) -> Sequence[models.Patient]:
        return self.find(models.Patient.name.contains(name, autoescape=True))

    def list_by_doctor(self, doctor_id: int) -> Sequence[models.Patient]:
        return self.find(models.Patient.doctor_id == doctor_id)


class OperatingTheaterRepository(_Repository):
    """CRUD operations for OperatingTheater."""

    model = models.OperatingTheater
    resource = "operating theater"

    def create(
        self,
        name: str,
        floor: int = 0,
        capacity: int = 0,
        status: models.TheaterStatus = models.TheaterStatus.AVAILABLE,
    ) -> models.OperatingTheater:
        theater = models.OperatingTheater(name=name, floor=floor, capacity=capacity, status=status)
        self.session.add(theater)
        self.session.flush()
        return theater

    def list_available(self) -> Sequence[models.OperatingTheater]:
        return self.find(models.OperatingTheater.status == models.TheaterStatus.AVAILABLE)


class SurgeryScheduleRepository(_Repository):
    """Persistence for SurgerySchedule; rows are created and moved only by the scheduler."""

    model = models.SurgerySchedule
    resource = "surgery"

    def _with_relations(self):
        return select(models.SurgerySchedule).options(
            selectinload(models.SurgerySchedule.patient),
            selectinload(models.SurgerySchedule.doctor),
            selectinload(models.SurgerySchedule.operating_theater),
        )

    def create(
        self,
        patient: models.Patient,
        doctor: models.Doctor,
        operating_theater: models.OperatingTheater,
        surgery_type: str,
        scheduled_at: datetime,
        estimated_duration: int,
        deposit_deducted: Decimal,
        notes: str | None = None,
    ) -> models.SurgerySchedule:
        surgery = models.SurgerySchedule(
            patient=patient,
            doctor=doctor,
            operating_theater=operating_theater,
            surgery_type=surgery_type,
            scheduled_at=scheduled_at,
            estimated_duration=estimated_duration,
            deposit_deducted=deposit_deducted,
            status=models.SurgeryStatus.SCHEDULED,
            notes=notes,
        )
        self.session.add(surgery)
        self.session.flush()
        return surgery

    def get_detailed(self, surgery_id: int) -> models.SurgerySchedule:
        stmt = self._with_relations().where(models.SurgerySchedule.id == surgery_id)
        surgery = self.session.scalars(stmt).one_or_none()
        if surgery is None:
            raise ResourceNotFoundError(self.resource, surgery_id)
        return surgery

    def list(
        self,
        status: models.SurgeryStatus | None = None,
        doctor_id: int | None = None,
        patient_id: int | None = None,
    ) -> Sequence[models.SurgerySchedule]:
        stmt = self._with_relations()
        if status is not None:
            stmt = stmt.where(models.SurgerySchedule.status == status)
        if doctor_id is not None:
            stmt = stmt.where(models.SurgerySchedule.doctor_id == doctor_id)
        if patient_id is not None:
            stmt = stmt.where(models.SurgerySchedule.patient_id == patient_id)
        return self.session.scalars(stmt.order_by(models.SurgerySchedule.id)).all()

    def has_active(self, *criteria) -> bool:
        stmt = select(
            exists().where(
                models.SurgerySchedule.status.in_(tuple(models.ACTIVE_STATUSES)),
                *criteria,
            )
        )
        return bool(self.session.execute(stmt).scalar())

    def doctor_booked_on(self, doctor_id: int, on_date: date) -> bool:
        """Check if a doctor has an active surgery on the given calendar day."""
        day_start = datetime.combine(on_date, time.min)
        return self.has_active(
            models.SurgerySchedule.doctor_id == doctor_id,
            models.SurgerySchedule.scheduled_at >= day_start,
            models.SurgerySchedule.scheduled_at < day_start + timedelta(days=1),
        )
