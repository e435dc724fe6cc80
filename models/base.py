import enum


# ============================================================================
# ENUMS
# ============================================================================

class RunState(str, enum.Enum):
    """Pipeline run lifecycle"""
    IDLE = "idle"
    EXTRACTING = "extracting"
    NORMALIZING = "normalizing"
    BATCHING = "batching"
    DELIVERING = "delivering"
    COMPLETED = "completed"
    FAILED = "failed"


class DeliveryStatus(str, enum.Enum):
    """Outcome of a batch delivery, or of a whole run"""
    SUCCESS = "success"
    PARTIAL_FAILURE = "partial_failure"  # run level only
    FAILURE = "failure"
    CANCELLED = "cancelled"
    SKIPPED = "skipped"


class ErrorKind(str, enum.Enum):
    """Delivery error classification"""
    CONNECTION = "connection"
    TIMEOUT = "timeout"
    SERVER_ERROR = "server_error"
    RATE_LIMITED = "rate_limited"
    CLIENT_ERROR = "client_error"
    UNEXPECTED_STATUS = "unexpected_status"
    UNEXPECTED = "unexpected"
    CANCELLED = "cancelled"

