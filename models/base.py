import enum
import uuid
from sqlalchemy.orm import declarative_base

Base = declarative_base()


# ============================================================================
# ENUMS
# ============================================================================

class ImportStatus(str, enum.Enum):
    """Batch and run status"""
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


TERMINAL_STATUSES = (ImportStatus.COMPLETED, ImportStatus.FAILED)


def new_id() -> str:
    return str(uuid.uuid4())
