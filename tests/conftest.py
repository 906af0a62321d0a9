"""Shared fixtures: a fresh file-backed SQLite database per test."""

from datetime import datetime, timedelta
from decimal import Decimal

import pytest

from surgery_scheduling import (
    HospitalService,
    SurgeryRequest,
    SurgeryScheduler,
    TransactionCoordinator,
    create_database_engine,
    init_db,
    make_session_factory,
)


@pytest.fixture
def engine(tmp_path):
    engine = create_database_engine(f"sqlite:///{tmp_path / 'surgery.db'}", echo=False)
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def coordinator(engine):
    return TransactionCoordinator(make_session_factory(engine))


@pytest.fixture
def scheduler(coordinator):
    return SurgeryScheduler(coordinator)


@pytest.fixture
def make_records(coordinator):
    """Create theaters, doctors and patients in one committed transaction."""

    def _make(theaters=1, doctors=1, deposits=(Decimal("500"),)):
        with coordinator.atomic() as session:
            service = HospitalService(session)
            theater_ids = [
                service.create_theater(name=f"OT-{n + 1}", floor=1, capacity=6).id
                for n in range(theaters)
            ]
            doctor_ids = [service.create_doctor(name=f"Dr. {n + 1}").id for n in range(doctors)]
            patient_ids = [
                service.create_patient(name=f"Patient {n + 1}", deposit=deposit).id
                for n, deposit in enumerate(deposits)
            ]
        return theater_ids, doctor_ids, patient_ids

    return _make


@pytest.fixture
def snapshot(coordinator):
    """Read the current theater status, doctor flag and patient deposit."""

    def _snapshot(theater_id, doctor_id, patient_id):
        with coordinator.atomic() as session:
            service = HospitalService(session)
            return (
                service.get_theater(theater_id).status,
                service.get_doctor(doctor_id).is_available,
                service.get_patient(patient_id).deposit,
            )

    return _snapshot


def build_request(patient_id, doctor_id, deposit="200", **overrides) -> SurgeryRequest:
    fields = dict(
        patient_id=patient_id,
        doctor_id=doctor_id,
        surgery_type="Appendectomy",
        scheduled_at=datetime.now() + timedelta(days=1),
        estimated_duration=90,
        deposit_required=Decimal(deposit),
        notes="Fasting from midnight",
    )
    fields.update(overrides)
    return SurgeryRequest(**fields)


@pytest.fixture
def booking_request():
    return build_request
