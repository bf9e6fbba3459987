# Package initialization
# Import all models to ensure relationships are properly established
from .profile import Profile
from .child import Child
from .therapist_child_assignment import TherapistChildAssignment
from .service import Service
from .specialist_working_hours import SpecialistWorkingHours
from .appointment import Appointment
from .transaction import Transaction

__all__ = [
    "Profile",
    "Child",
    "TherapistChildAssignment",
    "Service",
    "SpecialistWorkingHours",
    "Appointment",
    "Transaction",
]
