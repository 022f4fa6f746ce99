"""
Error message classifier for crawl and ingestion logs.

Converts verbose transport/provider error messages into concise summaries so
per-page skip logs stay readable.
"""
import re


class ErrorClassifier:
    """
    Classify and simplify fetch and provider errors.

    Takes verbose error messages and returns concise summaries.
    """

    # Error patterns and their simplified messages
    PATTERNS = [
        # Network/Connection
        (
            r"read timed out|connect timeout|timed out|timeout",
            "Connection timeout"
        ),
        (
            r"connection.*refused|connection.*reset|remote end closed",
            "Connection refused by remote host"
        ),
        (
            r"name or service not known|nodename nor servname|failed to resolve|getaddrinfo",
            "DNS resolution failed"
        ),
        (
            r"failed to establish.*connection|max retries exceeded",
            "Network connection failed"
        ),
        (
            r"ssl|certificate verify failed",
            "TLS handshake failed"
        ),

        # HTTP status
        (
            r"status 404|\b404\b",
            "Page not found (404)"
        ),
        (
            r"status 429|too many requests|rate limit",
            "Rate limit exceeded (429)"
        ),
        (
            r"status 40[13]|\b40[13]\b|permission|api key not valid",
            "Access denied (check credentials)"
        ),
        (
            r"status 5\d\d",
            "Remote server error (5xx)"
        ),

        # Payload
        (
            r"expecting value|decode|unexpected response shape",
            "Malformed response payload"
        ),
    ]

    @classmethod
    def classify(cls, error_message: str) -> str:
        """
        Classify an error message and return a concise summary.

        Args:
            error_message: Raw error message (can be multi-line)

        Returns:
            Concise error summary
        """
        if not error_message:
            return "Unknown error"

        # Normalize: lowercase, collapse whitespace
        normalized = " ".join(error_message.lower().split())

        for pattern, summary in cls.PATTERNS:
            if re.search(pattern, normalized, re.IGNORECASE):
                return summary

        # No pattern matched: first meaningful line without URLs
        for line in error_message.split('\n'):
            line = re.sub(r'https?://[^\s]+', '', line).strip()
            if len(line) > 10:
                return line[:150]

        return error_message.strip()[:150] or "Unknown error"


def simplify_error(error) -> str:
    """
    Quick helper to simplify an error or error message.

    Args:
        error: Exception instance or raw error message

    Returns:
        Concise error summary
    """
    return ErrorClassifier.classify(str(error))
