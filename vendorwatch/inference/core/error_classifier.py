import re

from vendorwatch.schema.errors import ConnectionErrorCategory, ConnectionErrorInfo

# Ordered, first match wins. Patterns are matched case-insensitively.
CATEGORY_PATTERNS: list[tuple[ConnectionErrorCategory, float, tuple[str, ...], str]] = [
    ("timeout", 1.0, ("timeout", "timed out"), "Request timed out"),
    (
        "connection_refused",
        1.0,
        ("econnrefused", "err_connection_refused", "connection refused"),
        "Connection refused by server",
    ),
    (
        "dns_failure",
        1.0,
        ("enotfound", "err_name_not_resolved", "getaddrinfo"),
        "DNS lookup failed",
    ),
    ("tls_error", 0.95, ("ssl", "err_cert", "certificate"), "TLS/SSL error"),
    (
        "network_error",
        0.9,
        ("net::err_", "econnreset", "network"),
        "Network error",
    ),
]

SERVER_ERROR_PATTERN = re.compile(r"\b5\d{2}\b")


def classify(text: str) -> ConnectionErrorInfo:
    lowered = text.lower()

    for category, confidence, patterns, summary in CATEGORY_PATTERNS:
        if any(pattern in lowered for pattern in patterns):
            return ConnectionErrorInfo(
                is_connection_error=True,
                category=category,
                confidence=confidence,
                summary=f"{summary}: {text[:200]}",
            )

    match = SERVER_ERROR_PATTERN.search(text)
    if match:
        return ConnectionErrorInfo(
            is_connection_error=True,
            category="server_error",
            confidence=0.9,
            summary=f"Server error {match.group(0)}: {text[:200]}",
        )

    return ConnectionErrorInfo(
        is_connection_error=False,
        category="unknown",
        confidence=0.0,
        summary=text,
    )


def classify_exception(error: BaseException) -> ConnectionErrorInfo:
    text = str(error) or type(error).__name__
    if isinstance(error, TimeoutError) and "timeout" not in text.lower():
        text = f"timeout: {text}"
    return classify(text)
