"""
GAEN Key Store Exception Classes
Error taxonomy for the storage core
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional


class ErrorCategory(str, Enum):
    """Error category for taxonomy"""
    STORAGE = "storage"             # Database unreachable or failing
    CONSISTENCY = "consistency"     # Broken storage invariant
    CONFIGURATION = "configuration" # Configuration/setup issues
    UNKNOWN = "unknown"             # Unclassified errors


class ErrorSeverity(str, Enum):
    """Error severity level"""
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class ErrorCode(str, Enum):
    """Standardized error codes"""
    # Storage errors (1xxx)
    STORAGE_UNAVAILABLE = "GKS1001"

    # Consistency errors (2xxx)
    ID_ALLOCATION_CONFLICT = "GKS2001"

    # Configuration errors (3xxx)
    UNSUPPORTED_DIALECT = "GKS3001"

    UNKNOWN_ERROR = "GKS0001"


@dataclass
class ErrorContext:
    """Additional context for error tracking"""
    operation: Optional[str] = None
    timestamp: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    metadata: dict = field(default_factory=dict)


class GaenStoreError(Exception):
    """Base exception for key store errors"""

    category: ErrorCategory = ErrorCategory.UNKNOWN
    severity: ErrorSeverity = ErrorSeverity.MEDIUM
    code: ErrorCode = ErrorCode.UNKNOWN_ERROR
    retryable: bool = False

    def __init__(self, message: str, context: Optional[ErrorContext] = None):
        self.message = message
        self.context = context or ErrorContext()
        super().__init__(self.message)

    def to_dict(self) -> dict:
        """Convert to dictionary for logging/API response"""
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "code": self.code.value,
            "category": self.category.value,
            "severity": self.severity.value,
            "retryable": self.retryable,
            "context": {
                "operation": self.context.operation,
                "timestamp": self.context.timestamp,
                **self.context.metadata,
            },
        }


class StorageUnavailableError(GaenStoreError):
    """
    Raised when the database cannot be reached or aborts the transaction.
    Nothing of the failed call has been committed; callers may retry.
    """

    category = ErrorCategory.STORAGE
    severity = ErrorSeverity.HIGH
    code = ErrorCode.STORAGE_UNAVAILABLE
    retryable = True


class IdAllocationConflictError(GaenStoreError):
    """
    Raised when a pre-reserved exposed id already belongs to another key.
    The identifier counter is out of sync with the key table; the whole
    ingestion call is rolled back and must not be retried blindly.
    """

    category = ErrorCategory.CONSISTENCY
    severity = ErrorSeverity.CRITICAL
    code = ErrorCode.ID_ALLOCATION_CONFLICT
    retryable = False

    def __init__(
        self,
        message: str = "Reserved exposed id collides with a stored key",
        first_id: Optional[int] = None,
        count: Optional[int] = None,
        context: Optional[ErrorContext] = None,
    ):
        super().__init__(message, context=context)
        self.first_id = first_id
        self.count = count

    def to_dict(self) -> dict:
        result = super().to_dict()
        result["first_id"] = self.first_id
        result["count"] = self.count
        return result


class UnsupportedDialectError(GaenStoreError):
    """Raised when no storage adapter exists for the configured database"""

    category = ErrorCategory.CONFIGURATION
    severity = ErrorSeverity.CRITICAL
    code = ErrorCode.UNSUPPORTED_DIALECT
    retryable = False
