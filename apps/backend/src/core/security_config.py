"""Redaction and error-exposure rules for the JobRelay API.

Log redaction matches on substrings of lower-cased keys, so a short entry
like "token" also covers "x-auth-token" and "session_token".
"""

SENSITIVE_KEYS: frozenset[str] = frozenset(
    {
        # credentials a job store client or upstream fetch may carry
        "password",
        "secret",
        "token",
        "api_key",
        "key",
        "jwt",
        "bearer",
        "auth",
        # request and response headers
        "cookie",
        "x-csrf-token",
        # personal data that may appear in submitted or proxied URLs
        "email",
        "phone",
        "address",
    }
)

# Always present: enough to correlate a report with server logs.
_BASE_ERROR_FIELDS = frozenset({"correlation_id", "type", "error_code"})

_DIAGNOSTIC_ERROR_FIELDS = frozenset(
    {"details", "traceback", "exception_type", "validation_errors"}
)

ERROR_FIELDS_BY_ENVIRONMENT: dict[str, frozenset[str]] = {
    "production": _BASE_ERROR_FIELDS,
    "development": _BASE_ERROR_FIELDS | _DIAGNOSTIC_ERROR_FIELDS,
    "test": _BASE_ERROR_FIELDS | _DIAGNOSTIC_ERROR_FIELDS,
}


def get_allowed_error_fields(environment: str) -> frozenset[str]:
    """Error body fields that may be returned in `environment`.

    Unknown environments get the development set, matching how settings
    treat anything other than production.
    """
    return ERROR_FIELDS_BY_ENVIRONMENT.get(
        environment, ERROR_FIELDS_BY_ENVIRONMENT["development"]
    )


def is_sensitive_key(key: str) -> bool:
    key_lower = key.lower()
    return any(sensitive in key_lower for sensitive in SENSITIVE_KEYS)
