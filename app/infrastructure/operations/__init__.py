"""Operation result types and status enums.

Standardized result types returned by storage and client calls, plus the
AWS error classifier shared by the store backends.
"""

from infrastructure.operations.classifiers import classify_aws_error
from infrastructure.operations.result import OperationResult
from infrastructure.operations.status import OperationStatus

__all__ = [
    "OperationResult",
    "OperationStatus",
    "classify_aws_error",
]
