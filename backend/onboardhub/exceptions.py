"""Onboarding service exceptions.

Every failure the core can report maps onto one of these types. The API
layer translates them into HTTP responses; nothing below the API layer
raises ``HTTPException`` directly.
"""


class OnboardingError(Exception):
    """Base exception for onboarding errors."""

    status_code = 500

    def __init__(self, message: str, code: str = "ONBOARDING_ERROR"):
        self.message = message
        self.code = code
        super().__init__(message)


class ValidationError(OnboardingError):
    """A required field is missing or invalid. Raised before any store call."""

    status_code = 400

    def __init__(self, message: str, field: str | None = None):
        self.field = field
        super().__init__(message=message, code="VALIDATION_ERROR")


class NotFoundError(OnboardingError):
    """Referenced row is absent, or belongs to a different project."""

    status_code = 404

    def __init__(self, resource: str, message: str | None = None):
        self.resource = resource
        super().__init__(
            message=message or f"{resource} not found",
            code="NOT_FOUND",
        )


class UnauthorizedError(OnboardingError):
    """Missing or invalid staff secret."""

    status_code = 401

    def __init__(self, message: str = "Not authenticated"):
        super().__init__(message=message, code="UNAUTHORIZED")


class ConflictError(OnboardingError):
    """Unique constraint violation (duplicate tag name, duplicate assignment)."""

    status_code = 409

    def __init__(self, message: str):
        super().__init__(message=message, code="CONFLICT")


class AmbiguousRemapError(ConflictError):
    """Stage identifiers cannot be remapped because order_index repeats.

    Raised before anything is written for the copy.
    """

    def __init__(self, source_id, order_indexes: list[int], source: str = "Template"):
        self.source_id = source_id
        self.order_indexes = order_indexes
        super().__init__(
            f"{source} {source_id} has stages sharing order_index "
            f"{sorted(order_indexes)}; stage references cannot be remapped",
        )
        self.code = "AMBIGUOUS_STAGE_ORDER"


class UpstreamError(OnboardingError):
    """The store, blob store or mailer call failed."""

    status_code = 502

    def __init__(self, service: str, message: str):
        self.service = service
        super().__init__(
            message=f"[{service}] {message}",
            code="UPSTREAM_FAILURE",
        )


class PartialCopyError(UpstreamError):
    """A duplication failed after the new template row was written.

    The partially copied template is kept so it can be inspected or removed.
    """

    def __init__(self, template_id, stage: str, message: str):
        self.template_id = template_id
        self.stage = stage
        super().__init__(
            service="store",
            message=f"template copy {template_id} stopped while copying {stage}: {message}",
        )
