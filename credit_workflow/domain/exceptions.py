"""Domain-specific exceptions"""


class DomainException(Exception):
    """Base exception for domain layer"""

    pass


class ValidationError(DomainException):
    """Input shape or business rule violated"""

    def __init__(self, field: str, message: str):
        super().__init__(f"{field}: {message}")
        self.field = field
        self.message = message


class PermissionDenied(DomainException):
    """Actor lacks the capability required for the transition"""

    def __init__(self, actor_role: str, capability: str):
        super().__init__(f"Role '{actor_role}' lacks capability '{capability}'")
        self.actor_role = actor_role
        self.capability = capability


class ScoringUnavailable(DomainException):
    """Scoring oracle failed or timed out after retries"""

    pass


class ConflictError(DomainException):
    """Application was modified concurrently (version mismatch)"""

    def __init__(self, application_id: str, expected_version: int, actual_version: int):
        super().__init__(
            f"Application {application_id} is at version {actual_version}, expected {expected_version}"
        )
        self.application_id = application_id
        self.expected_version = expected_version
        self.actual_version = actual_version


class ApplicationNotFound(DomainException):
    """No application with the given id"""

    pass
