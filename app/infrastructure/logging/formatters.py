"""structlog processors used by every processing worker.

Processors are built by factories so each worker can stamp its own
deployment details while sharing the masking rules.
"""

from typing import Any, Mapping

# Keys whose values must never reach the logs. Payload bodies are tenant
# data and are masked alongside credentials.
SENSITIVE_PATTERNS = frozenset(
    {
        "password",
        "secret",
        "token",
        "api_key",
        "apikey",
        "authorization",
        "credential",
        "private_key",
        "message_payload",
        "raw_payload",
    }
)

REDACTED = "***REDACTED***"


def add_app_info(app_name: str, git_sha: str = "unknown"):
    """Processor stamping the worker name and deployed git sha."""

    def processor(
        logger: Any, method_name: str, event_dict: dict[str, Any]
    ) -> dict[str, Any]:
        event_dict["app"] = app_name
        event_dict["git_sha"] = git_sha
        return event_dict

    return processor


def add_environment_info(environment: str):
    """Processor stamping the deployment environment."""

    def processor(
        logger: Any, method_name: str, event_dict: dict[str, Any]
    ) -> dict[str, Any]:
        event_dict["environment"] = environment
        return event_dict

    return processor


def _is_sensitive(key: str, patterns: frozenset) -> bool:
    lowered = key.lower()
    return any(pattern in lowered for pattern in patterns)


def _mask(value: Any, patterns: frozenset, mask_value: str) -> Any:
    if not isinstance(value, Mapping):
        return value
    return {
        key: (
            mask_value
            if item is not None and _is_sensitive(str(key), patterns)
            else _mask(item, patterns, mask_value)
        )
        for key, item in value.items()
    }


def mask_sensitive_data(
    mask_value: str = REDACTED,
    additional_patterns: frozenset[str] | None = None,
):
    """Processor replacing sensitive values with ``mask_value``.

    A key is sensitive when it contains any pattern, case-insensitively.
    Nested mappings such as ``message_metadata`` are masked recursively.
    ``None`` values are left alone so absent fields stay visible.
    """
    patterns = SENSITIVE_PATTERNS
    if additional_patterns:
        patterns = patterns | additional_patterns

    def processor(
        logger: Any, method_name: str, event_dict: dict[str, Any]
    ) -> dict[str, Any]:
        return _mask(event_dict, patterns, mask_value)

    return processor


def truncate_large_values(max_length: int = 500):
    """Processor shortening string values longer than ``max_length``.

    Failure reasons carry exception text and tracebacks; one bad message
    must not flood the log stream.
    """

    def processor(
        logger: Any, method_name: str, event_dict: dict[str, Any]
    ) -> dict[str, Any]:
        for key, value in event_dict.items():
            if isinstance(value, str) and len(value) > max_length:
                event_dict[key] = (
                    f"{value[:max_length]}...[truncated, {len(value)} chars total]"
                )
        return event_dict

    return processor
