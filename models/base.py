from sqlalchemy.orm import declarative_base
import enum

Base = declarative_base()


# ============================================================================
# ENUMS
# ============================================================================

class StorageBackend(str, enum.Enum):
    """Document store destinations"""
    POSTGRES = "postgres"
    LOCAL_FILE = "local_file"
    MEMORY = "memory"


class RunStatus(str, enum.Enum):
    """Pipeline run status"""
    INITIATED = "INITIATED"
    EXTRACTING = "EXTRACTING"
    TRANSFORMING = "TRANSFORMING"
    LOADING = "LOADING"
    FINISHED = "FINISHED"
    ERROR = "ERROR"
    CANCELLED = "CANCELLED"

    @property
    def is_terminal(self) -> bool:
        return self in (RunStatus.FINISHED, RunStatus.ERROR, RunStatus.CANCELLED)


class WriteKind(str, enum.Enum):
    """Document store mutation kinds"""
    UPSERT = "upsert"
    PATCH = "patch"
    DELETE = "delete"
