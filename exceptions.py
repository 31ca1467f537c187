"""Exceptions raised while scoring an exam."""


class ScoringException(Exception):
    """Base exception for scoring operations."""

    pass


class OracleError(ScoringException):
    """The AI scoring endpoint did not produce a usable score."""

    reason = "oracle"

    def __init__(self, message: str, provider: str = ""):
        self.message = message
        self.provider = provider
        super().__init__(f"[{provider}] {message}" if provider else message)


class OracleTransportError(OracleError):
    """Network/HTTP failure, timeout, or endpoint not configured."""

    reason = "transport"


class OracleParseError(OracleError):
    """Reply received but no valid JSON payload could be extracted."""

    reason = "parse"


class OracleSemanticError(OracleError):
    """Endpoint explicitly returned an error payload."""

    reason = "semantic"


class IncompleteExamError(ScoringException):
    """No module has a positive band, so no overall band exists."""

    def __init__(self, message: str = "No scored modules to aggregate"):
        self.message = message
        super().__init__(message)
