from pathlab.models.patient import PatientRecord
from pathlab.models.registration import RegistrationRecord

__all__ = [
    "PatientRecord",
    "RegistrationRecord",
]
