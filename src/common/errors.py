# ABOUTME: Declares the error taxonomy raised by the CCIS engines.
# ABOUTME: Validation errors cover malformed input; business-rule errors cover invalid combinations.


class CCISError(ValueError):
    """Base class for every error raised by the assessment core."""


class CCISValidationError(CCISError):
    """Malformed or out-of-range input (signals outside [0, 1], empty aggregations, ...)."""

    def __init__(self, message: str, field: str = None):
        super().__init__(message)
        self.field = field


class BusinessRuleError(CCISError):
    """Semantically invalid request, e.g. advancing past the top CCIS level."""

    def __init__(self, message: str, rule: str = None):
        super().__init__(message)
        self.rule = rule
