"""Surgery scheduling: transactional booking of theaters, doctors and deposits."""

from .db import Base, create_database_engine, init_db, make_session_factory, session_scope
from .exceptions import (
    ConflictError,
    DatabaseConnectionError,
    InsufficientFundsError,
    InvalidTransitionError,
    NoResourceAvailableError,
    ResourceBusyError,
    ResourceNotFoundError,
    SchedulingError,
    ValidationError,
)
from .locking import RowLockManager
from .models import Doctor, OperatingTheater, Patient, SurgerySchedule, SurgeryStatus, TheaterStatus
from .scheduling import SurgeryRequest, SurgeryScheduler
from .services import HospitalService
from .transactions import TransactionCoordinator

__all__ = [
    "Base",
    "create_database_engine",
    "make_session_factory",
    "session_scope",
    "init_db",
    "HospitalService",
    "RowLockManager",
    "SurgeryRequest",
    "SurgeryScheduler",
    "TransactionCoordinator",
    "Doctor",
    "Patient",
    "OperatingTheater",
    "SurgerySchedule",
    "SurgeryStatus",
    "TheaterStatus",
    "SchedulingError",
    "DatabaseConnectionError",
    "ValidationError",
    "ResourceNotFoundError",
    "NoResourceAvailableError",
    "ResourceBusyError",
    "InsufficientFundsError",
    "InvalidTransitionError",
    "ConflictError",
]
