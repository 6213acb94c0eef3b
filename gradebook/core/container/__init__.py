__all__ = [
    "AuthContainer",
    "BootConfiguration",
    "GradebookContainer",
    "GradingContainer",
    "PersistentContainer",
    "StorageContainer",
]

from .auth import AuthContainer
from .gradebook import BootConfiguration, GradebookContainer
from .grading import GradingContainer
from .storage import PersistentContainer, StorageContainer
