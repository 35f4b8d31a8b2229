"""dltracker-doctor: find and discard broken records in a package download tracker."""

__version__ = "0.1.0"

from dltracker_doctor.auditor import Auditor, TrackerAuditor
from dltracker_doctor.doctor import Doctor, DoctorProtocol
from dltracker_doctor.exceptions import DoctorError, ReconciliationError, StoreParseError
from dltracker_doctor.models import (
    HANDLED_ERRORS,
    CommitReport,
    Problem,
    ProblemError,
    RemovalResult,
)
from dltracker_doctor.reporter import Reporter
from dltracker_doctor.store import MAPFILE_NAME

__all__ = [
    "HANDLED_ERRORS",
    "MAPFILE_NAME",
    "Auditor",
    "CommitReport",
    "Doctor",
    "DoctorError",
    "DoctorProtocol",
    "Problem",
    "ProblemError",
    "ReconciliationError",
    "RemovalResult",
    "Reporter",
    "StoreParseError",
    "TrackerAuditor",
]
