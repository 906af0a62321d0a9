import json
import logging

from surgery_scheduling.logging_config import JSONFormatter, configure_logging


def test_configure_logging_replaces_its_handler(monkeypatch):
    monkeypatch.setenv("SURGERY_LOG_LEVEL", "debug")
    configure_logging()
    package_logger = configure_logging(fmt="json")

    owned = [h for h in package_logger.handlers if h.get_name() == "surgery_scheduling"]
    assert len(owned) == 1
    assert isinstance(owned[0].formatter, JSONFormatter)
    assert package_logger.level == logging.DEBUG
    package_logger.removeHandler(owned[0])


def test_json_formatter_carries_booking_context():
    record = logging.LogRecord(
        "surgery_scheduling.scheduling", logging.INFO, __file__, 1, "Surgery %s cancelled", (5,), None
    )
    record.surgery_id = 5

    payload = json.loads(JSONFormatter().format(record))

    assert payload["message"] == "Surgery 5 cancelled"
    assert payload["surgery_id"] == 5
    assert payload["level"] == "INFO"
    assert "doctor_id" not in payload


def test_scheduler_logs_outcomes(caplog, scheduler, make_records, booking_request):
    _, (doctor_id,), (patient_id,) = make_records()
    caplog.set_level(logging.INFO, logger="surgery_scheduling")

    surgery = scheduler.schedule(booking_request(patient_id, doctor_id))
    scheduler.cancel(surgery.id)

    messages = [r.getMessage() for r in caplog.records]
    assert f"Surgery {surgery.id} scheduled in theater {surgery.operating_theater_id}" in messages
    assert f"Surgery {surgery.id} cancelled and deposit refunded" in messages
