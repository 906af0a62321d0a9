from datetime import datetime, timedelta
from decimal import Decimal

import pytest

from surgery_scheduling import (
    HospitalService,
    InsufficientFundsError,
    InvalidTransitionError,
    NoResourceAvailableError,
    ResourceBusyError,
    ResourceNotFoundError,
    SurgeryScheduler,
    SurgeryStatus,
    TheaterStatus,
    ValidationError,
)
from surgery_scheduling.scheduling import SCHEDULE_GRACE


def test_schedule_claims_all_three_resources(scheduler, make_records, snapshot, booking_request):
    (theater_id,), (doctor_id,), (patient_id,) = make_records()

    surgery = scheduler.schedule(booking_request(patient_id, doctor_id, deposit="200"))

    assert surgery.status is SurgeryStatus.SCHEDULED
    assert surgery.deposit_deducted == Decimal("200")
    assert surgery.operating_theater_id == theater_id
    assert surgery.operating_theater.status is TheaterStatus.OCCUPIED
    assert surgery.doctor.is_available is False
    assert surgery.patient.deposit == Decimal("300")
    assert snapshot(theater_id, doctor_id, patient_id) == (
        TheaterStatus.OCCUPIED,
        False,
        Decimal("300"),
    )
    assert len(scheduler.list_surgeries()) == 1


def test_schedule_then_cancel_round_trips_every_resource(
    scheduler, make_records, snapshot, booking_request
):
    (theater_id,), (doctor_id,), (patient_id,) = make_records(deposits=(Decimal("500"),))
    surgery = scheduler.schedule(booking_request(patient_id, doctor_id, deposit="200"))

    cancelled = scheduler.cancel(surgery.id)

    assert cancelled.status is SurgeryStatus.CANCELLED
    assert snapshot(theater_id, doctor_id, patient_id) == (
        TheaterStatus.AVAILABLE,
        True,
        Decimal("500"),
    )


def test_complete_frees_resources_and_keeps_deposit(
    scheduler, make_records, snapshot, booking_request
):
    (theater_id,), (doctor_id,), (patient_id,) = make_records()
    surgery = scheduler.schedule(booking_request(patient_id, doctor_id, deposit="200"))

    completed = scheduler.complete(surgery.id)

    assert completed.status is SurgeryStatus.COMPLETED
    assert snapshot(theater_id, doctor_id, patient_id) == (
        TheaterStatus.AVAILABLE,
        True,
        Decimal("300"),
    )


def test_complete_from_in_progress(scheduler, make_records, snapshot, booking_request):
    (theater_id,), (doctor_id,), (patient_id,) = make_records()
    surgery = scheduler.schedule(booking_request(patient_id, doctor_id))

    started = scheduler.start(surgery.id)
    assert started.status is SurgeryStatus.IN_PROGRESS
    # Resources stay claimed while the surgery runs.
    assert snapshot(theater_id, doctor_id, patient_id)[:2] == (TheaterStatus.OCCUPIED, False)

    assert scheduler.complete(surgery.id).status is SurgeryStatus.COMPLETED
    assert snapshot(theater_id, doctor_id, patient_id)[:2] == (TheaterStatus.AVAILABLE, True)


def test_in_progress_surgery_cannot_be_cancelled(scheduler, make_records, booking_request):
    _, (doctor_id,), (patient_id,) = make_records()
    surgery = scheduler.schedule(booking_request(patient_id, doctor_id))
    scheduler.start(surgery.id)

    with pytest.raises(InvalidTransitionError):
        scheduler.cancel(surgery.id)
    with pytest.raises(InvalidTransitionError):
        scheduler.start(surgery.id)
    assert scheduler.get_surgery(surgery.id).status is SurgeryStatus.IN_PROGRESS


@pytest.mark.parametrize(
    "first, second",
    [("cancel", "cancel"), ("complete", "complete"), ("cancel", "complete"), ("complete", "cancel")],
)
def test_second_release_fails_without_side_effects(
    scheduler, make_records, snapshot, booking_request, first, second
):
    (theater_id,), (doctor_id,), (patient_id,) = make_records()
    surgery = scheduler.schedule(booking_request(patient_id, doctor_id))
    getattr(scheduler, first)(surgery.id)
    before = snapshot(theater_id, doctor_id, patient_id)

    with pytest.raises(InvalidTransitionError):
        getattr(scheduler, second)(surgery.id)

    assert snapshot(theater_id, doctor_id, patient_id) == before
    assert scheduler.get_surgery(surgery.id).status.is_terminal


def test_insufficient_funds_leaves_nothing_claimed(
    scheduler, make_records, snapshot, booking_request
):
    (theater_id,), (doctor_id,), (patient_id,) = make_records(deposits=(Decimal("100"),))

    with pytest.raises(InsufficientFundsError) as excinfo:
        scheduler.schedule(booking_request(patient_id, doctor_id, deposit="200"))

    assert excinfo.value.available == Decimal("100")
    assert excinfo.value.required == Decimal("200")
    assert snapshot(theater_id, doctor_id, patient_id) == (
        TheaterStatus.AVAILABLE,
        True,
        Decimal("100"),
    )
    assert scheduler.list_surgeries() == []


def test_exact_deposit_is_enough(scheduler, make_records, snapshot, booking_request):
    (theater_id,), (doctor_id,), (patient_id,) = make_records(deposits=(Decimal("200"),))

    scheduler.schedule(booking_request(patient_id, doctor_id, deposit="200"))

    assert snapshot(theater_id, doctor_id, patient_id)[2] == Decimal("0")


def test_no_available_theater(scheduler, make_records, booking_request):
    _, (doctor_id,), (patient_id,) = make_records(theaters=0)

    with pytest.raises(NoResourceAvailableError) as excinfo:
        scheduler.schedule(booking_request(patient_id, doctor_id))

    assert excinfo.value.resource == "operating theater"


def test_maintenance_theater_is_not_eligible(scheduler, coordinator, make_records, booking_request):
    (theater_id,), (doctor_id,), (patient_id,) = make_records()

    with coordinator.atomic() as session:
        HospitalService(session).update_theater(theater_id, status=TheaterStatus.MAINTENANCE)

    with pytest.raises(NoResourceAvailableError):
        scheduler.schedule(booking_request(patient_id, doctor_id))


def test_first_eligible_theater_is_chosen(scheduler, make_records, booking_request):
    theater_ids, doctor_ids, patient_ids = make_records(
        theaters=2, doctors=2, deposits=(Decimal("500"), Decimal("500"))
    )

    first = scheduler.schedule(booking_request(patient_ids[0], doctor_ids[0]))
    second = scheduler.schedule(booking_request(patient_ids[1], doctor_ids[1]))

    assert [first.operating_theater_id, second.operating_theater_id] == theater_ids


def test_busy_doctor_is_rejected_and_theater_released(
    scheduler, make_records, snapshot, booking_request
):
    theater_ids, (doctor_id,), patient_ids = make_records(
        theaters=2, deposits=(Decimal("500"), Decimal("500"))
    )
    scheduler.schedule(booking_request(patient_ids[0], doctor_id))

    with pytest.raises(ResourceBusyError) as excinfo:
        scheduler.schedule(
            booking_request(
                patient_ids[1], doctor_id, scheduled_at=datetime.now() + timedelta(days=30)
            )
        )

    assert excinfo.value.resource == "doctor"
    assert snapshot(theater_ids[1], doctor_id, patient_ids[1]) == (
        TheaterStatus.AVAILABLE,
        False,
        Decimal("500"),
    )


def test_doctor_is_bookable_again_after_release(scheduler, make_records, booking_request):
    _, (doctor_id,), (patient_id,) = make_records(deposits=(Decimal("1000"),))

    first = scheduler.schedule(booking_request(patient_id, doctor_id))
    scheduler.complete(first.id)
    second = scheduler.schedule(booking_request(patient_id, doctor_id))

    assert second.status is SurgeryStatus.SCHEDULED
    assert second.doctor_id == doctor_id


@pytest.mark.parametrize("missing", ["doctor", "patient"])
def test_missing_doctor_or_patient_rolls_back(
    scheduler, coordinator, make_records, booking_request, missing
):
    (theater_id,), (doctor_id,), (patient_id,) = make_records()
    if missing == "doctor":
        request = booking_request(patient_id, 999)
    else:
        request = booking_request(999, doctor_id)

    with pytest.raises(ResourceNotFoundError) as excinfo:
        scheduler.schedule(request)

    assert excinfo.value.resource == missing

    with coordinator.atomic() as session:
        service = HospitalService(session)
        assert service.get_theater(theater_id).status is TheaterStatus.AVAILABLE
        assert service.get_doctor(doctor_id).is_available is True


@pytest.mark.parametrize("action", ["start", "complete", "cancel"])
def test_transitions_on_unknown_surgery(scheduler, action):
    with pytest.raises(ResourceNotFoundError) as excinfo:
        getattr(scheduler, action)(42)
    assert excinfo.value.resource == "surgery"


@pytest.mark.parametrize(
    "overrides",
    [
        {"deposit_required": Decimal("0")},
        {"deposit_required": Decimal("-5")},
        {"deposit_required": "lots"},
        {"deposit_required": Decimal("1e30")},
        {"deposit_required": Decimal("10000000000")},
        {"deposit_required": Decimal("Infinity")},
        {"estimated_duration": 0},
        {"estimated_duration": -30},
        {"surgery_type": "   "},
        {"scheduled_at": datetime.now() - timedelta(days=1)},
        {"scheduled_at": "tomorrow"},
        {"patient_id": 0},
        {"doctor_id": None},
    ],
)
def test_invalid_requests_fail_before_any_lock(
    scheduler, make_records, snapshot, booking_request, overrides
):
    (theater_id,), (doctor_id,), (patient_id,) = make_records()

    with pytest.raises(ValidationError):
        scheduler.schedule(
            booking_request(**{"patient_id": patient_id, "doctor_id": doctor_id, **overrides})
        )

    assert snapshot(theater_id, doctor_id, patient_id) == (
        TheaterStatus.AVAILABLE,
        True,
        Decimal("500"),
    )


def test_request_fields_are_normalized(scheduler, make_records, booking_request):
    _, (doctor_id,), (patient_id,) = make_records()

    surgery = scheduler.schedule(
        booking_request(
            patient_id,
            doctor_id,
            surgery_type="  Hip replacement ",
            deposit_required="199.999",
            notes="  ",
        )
    )

    assert surgery.surgery_type == "Hip replacement"
    assert surgery.deposit_deducted == Decimal("200.00")
    assert surgery.notes is None


def test_queries_by_doctor_patient_and_status(scheduler, make_records, booking_request):
    _, doctor_ids, patient_ids = make_records(
        theaters=2, doctors=2, deposits=(Decimal("500"), Decimal("500"))
    )
    first = scheduler.schedule(booking_request(patient_ids[0], doctor_ids[0]))
    second = scheduler.schedule(booking_request(patient_ids[1], doctor_ids[1]))
    scheduler.cancel(second.id)

    assert [s.id for s in scheduler.list_surgeries_by_doctor(doctor_ids[0])] == [first.id]
    assert [s.id for s in scheduler.list_surgeries_by_patient(patient_ids[1])] == [second.id]
    assert [s.id for s in scheduler.list_surgeries(status=SurgeryStatus.CANCELLED)] == [second.id]

    detailed = scheduler.get_surgery(first.id)
    assert detailed.patient.id == patient_ids[0]
    assert detailed.doctor.id == doctor_ids[0]
    assert detailed.operating_theater.status is TheaterStatus.OCCUPIED


@pytest.mark.parametrize("action", ["start", "complete", "cancel"])
def test_transition_is_one_transaction_with_relations_loaded(
    scheduler, make_records, booking_request, monkeypatch, action
):
    _, (doctor_id,), (patient_id,) = make_records()
    surgery = scheduler.schedule(booking_request(patient_id, doctor_id))

    units = []
    run_atomic = scheduler.coordinator.run_atomic

    def counting_run_atomic(fn):
        units.append(fn)
        return run_atomic(fn)

    monkeypatch.setattr(scheduler.coordinator, "run_atomic", counting_run_atomic)
    result = getattr(scheduler, action)(surgery.id)

    assert len(units) == 1
    assert result.id == surgery.id
    assert result.patient.id == patient_id
    assert result.doctor.id == doctor_id
    expected = TheaterStatus.OCCUPIED if action == "start" else TheaterStatus.AVAILABLE
    assert result.operating_theater.status is expected


@pytest.mark.parametrize(
    "offset",
    [timedelta(0), -SCHEDULE_GRACE, timedelta(hours=2)],
    ids=["now", "grace-limit", "later-today"],
)
def test_schedule_time_within_grace_is_accepted(
    coordinator, make_records, booking_request, offset
):
    now = datetime(2030, 3, 4, 9, 30)
    scheduler = SurgeryScheduler(coordinator, clock=lambda: now)
    _, (doctor_id,), (patient_id,) = make_records()

    surgery = scheduler.schedule(booking_request(patient_id, doctor_id, scheduled_at=now + offset))

    assert surgery.scheduled_at == now + offset


def test_schedule_time_just_past_grace_is_rejected(
    coordinator, make_records, snapshot, booking_request
):
    now = datetime(2030, 3, 4, 9, 30)
    scheduler = SurgeryScheduler(coordinator, clock=lambda: now)
    (theater_id,), (doctor_id,), (patient_id,) = make_records()
    too_early = now - SCHEDULE_GRACE - timedelta(seconds=1)

    with pytest.raises(ValidationError):
        scheduler.schedule(booking_request(patient_id, doctor_id, scheduled_at=too_early))

    assert snapshot(theater_id, doctor_id, patient_id) == (
        TheaterStatus.AVAILABLE,
        True,
        Decimal("500"),
    )
