from enum import Enum


class DispensationStatus(str, Enum):
    pending = "pending"
    approved = "approved"
    rejected = "rejected"
    completed = "completed"


class Decision(str, Enum):
    approved = "approved"
    rejected = "rejected"


class StorageBackend(str, Enum):
    FILE = "file"
    DATABASE = "database"
