"""Error classifiers for storage and client exceptions.

Converts AWS SDK exceptions into standardized OperationResult objects so
store backends and failure classifiers share one mapping.

Usage:
    from infrastructure.operations.classifiers import classify_aws_error

    try:
        client.put_item(TableName=table, Item=item)
    except Exception as exc:
        return classify_aws_error(exc)
"""

from botocore.exceptions import BotoCoreError, ClientError

from infrastructure.operations.result import OperationResult
from infrastructure.operations.status import OperationStatus

THROTTLING_CODES = frozenset(
    {
        "ThrottlingException",
        "Throttling",
        "RequestLimitExceeded",
        "ProvisionedThroughputExceededException",
    }
)

TRANSIENT_SERVER_CODES = frozenset(
    {
        "InternalServerError",
        "ServiceUnavailable",
        "TransactionInProgressException",
    }
)

CONFLICT_CODES = frozenset(
    {
        "ConditionalCheckFailedException",
        "TransactionConflictException",
    }
)

VALIDATION_CODES = frozenset(
    {
        "ValidationException",
        "InvalidParameterException",
        "BadRequestException",
        "SerializationException",
    }
)


def classify_aws_error(exc: Exception) -> OperationResult:
    """Classify AWS SDK errors into OperationResult.

    Error Code Mapping:
    - Throttling codes: TRANSIENT_ERROR with retry_after
    - ConditionalCheckFailedException: CONFLICT
    - AccessDeniedException: UNAUTHORIZED
    - ResourceNotFoundException: NOT_FOUND
    - ValidationException and friends: PERMANENT_ERROR
    - Other ClientError codes: TRANSIENT_ERROR (AWS convention)
    - BotoCoreError (connection, timeout): TRANSIENT_ERROR

    Args:
        exc: Exception raised by boto3/botocore

    Returns:
        OperationResult with status, message and error_code
    """
    if isinstance(exc, BotoCoreError):
        return OperationResult.transient_error(
            f"AWS connection error: {type(exc).__name__}: {exc}",
            error_code="CONNECTION_ERROR",
        )

    if not isinstance(exc, ClientError):
        return OperationResult.permanent_error(
            f"Unexpected error: {type(exc).__name__}: {exc}",
            error_code="UNEXPECTED_ERROR",
        )

    error_info = exc.response.get("Error", {}) if exc.response else {}
    error_code = error_info.get("Code", "Unknown")
    error_message = error_info.get("Message", str(exc))

    if error_code in THROTTLING_CODES:
        return OperationResult.transient_error(
            f"AWS API throttled: {error_message}",
            error_code=error_code,
            retry_after=60,
        )

    if error_code in CONFLICT_CODES:
        return OperationResult.conflict(error_message, error_code=error_code)

    if error_code in ("AccessDeniedException", "UnauthorizedOperation"):
        return OperationResult.error(
            OperationStatus.UNAUTHORIZED,
            "AWS API access denied",
            error_code=error_code,
        )

    if error_code == "ResourceNotFoundException":
        return OperationResult.error(
            OperationStatus.NOT_FOUND,
            "AWS resource not found",
            error_code=error_code,
        )

    if error_code in VALIDATION_CODES:
        return OperationResult.permanent_error(
            f"AWS validation error: {error_message}",
            error_code=error_code,
        )

    if error_code in TRANSIENT_SERVER_CODES:
        return OperationResult.transient_error(
            f"AWS server error: {error_message}", error_code=error_code
        )

    # Unknown AWS errors are retried by default
    return OperationResult.transient_error(
        f"AWS client error: {error_code}",
        error_code=error_code,
    )
