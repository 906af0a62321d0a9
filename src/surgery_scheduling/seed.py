"""Initial data seeding for the surgery scheduling system."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from decimal import Decimal

from surgery_scheduling import (
    HospitalService,
    SurgeryRequest,
    SurgeryScheduler,
    TransactionCoordinator,
    create_database_engine,
    init_db,
    make_session_factory,
)
from surgery_scheduling.logging_config import configure_logging

logger = logging.getLogger(__name__)


def seed(database_url: str | None = None) -> None:
    """Populate the database with starter theaters, doctors, patients and one booking."""
    engine = create_database_engine(database_url)
    init_db(engine)
    coordinator = TransactionCoordinator(make_session_factory(engine))

    with coordinator.atomic() as session:
        service = HospitalService(session)

        theaters_seed = [("OT-1", 1, 6), ("OT-2", 1, 6), ("OT-3", 2, 8), ("Hybrid OR", 3, 10)]
        existing_theaters = {t.name for t in service.list_theaters()}
        for name, floor, capacity in theaters_seed:
            if name in existing_theaters:
                logger.info("[theater] exists %s", name)
                continue
            service.create_theater(name=name, floor=floor, capacity=capacity)
            logger.info("[theater] created %s", name)

        doctors_seed = [
            ("Dr. Amelia Hart", "555-0101"),
            ("Dr. Rafael Ortiz", "555-0102"),
            ("Dr. Mei Tanaka", "555-0103"),
        ]
        existing_doctors = {d.name for d in service.list_doctors()}
        for name, contact in doctors_seed:
            if name in existing_doctors:
                logger.info("[doctor] exists %s", name)
                continue
            service.create_doctor(name=name, contact_no=contact)
            logger.info("[doctor] created %s", name)

        patients_seed = [
            ("Jonas Berg", Decimal("1500.00")),
            ("Priya Nair", Decimal("800.00")),
            ("Tom Walsh", Decimal("250.00")),
        ]
        existing_patients = {p.name for p in service.list_patients()}
        for name, deposit in patients_seed:
            if name in existing_patients:
                logger.info("[patient] exists %s", name)
                continue
            service.create_patient(name=name, deposit=deposit)
            logger.info("[patient] created %s", name)

        doctors = service.list_doctors()
        patients = service.list_patients()
        needs_demo_booking = not service.surgeries.list()

    if needs_demo_booking and doctors and patients:
        scheduler = SurgeryScheduler(coordinator)
        surgery = scheduler.schedule(
            SurgeryRequest(
                patient_id=patients[0].id,
                doctor_id=doctors[0].id,
                surgery_type="Appendectomy",
                scheduled_at=datetime.now() + timedelta(days=1, hours=2),
                estimated_duration=90,
                deposit_required=Decimal("400.00"),
                notes="Demo booking",
            )
        )
        logger.info("[surgery] seeded booking #%s", surgery.id)


if __name__ == "__main__":
    configure_logging()
    seed()
