class RetryableException(Exception):
    """Exception for errors that can be retried by resubmitting (network timeouts, temporary service unavailability)."""

class FatalException(Exception):
    """Exception for non-recoverable errors (authentication failures, validation errors)."""


class FleetDomainError(Exception):
    """Base class for all fleet domain errors. `status_code` is the HTTP mapping."""
    status_code = 400

    def __init__(self, message: str = "", field: str = None):
        super().__init__(message or self.__class__.__doc__)
        self.message = message or (self.__class__.__doc__ or "").strip()
        self.field = field


# Validation (client-local, never reaches the database)

class FleetValidationError(FleetDomainError, FatalException):
    """Input failed validation."""
    status_code = 422


# Authentication

class AuthenticationError(FleetDomainError, FatalException):
    """Authentication failed."""
    status_code = 401

class InvalidOtpError(AuthenticationError):
    """The code entered is incorrect."""

class OtpExpiredError(AuthenticationError):
    """The code has expired or was never issued. Request a new one."""

class TooManyAttemptsError(AuthenticationError):
    """Too many incorrect attempts. Request a new code."""

class NotAuthenticatedError(AuthenticationError):
    """Sign in to continue."""

class RoleNotAllowedError(FleetDomainError, FatalException):
    """This account is not allowed to perform the action."""
    status_code = 403

class OnboardingRequiredError(FleetDomainError, FatalException):
    """Complete your profile first."""
    status_code = 403

class SubscriptionRequiredError(FleetDomainError, FatalException):
    """An active subscription is required."""
    status_code = 402

class RateLimitedError(FleetDomainError, RetryableException):
    """Too many requests. Please try again later."""
    status_code = 429


# Consistency

class ConsistencyError(FleetDomainError, FatalException):
    """The request conflicts with existing data."""
    status_code = 409

class DuplicateRegistrationError(ConsistencyError):
    """Vehicle with this number already exists."""

class AlreadyOnboardedError(ConsistencyError):
    """Onboarding has already been completed."""

class TrialAlreadyUsedError(ConsistencyError):
    """The free trial has already been used."""

class SubscriptionAlreadyActiveError(ConsistencyError):
    """A subscription is already active."""

class DriverNotAssignedError(ConsistencyError):
    """The driver is not assigned to this vehicle."""

class DriverUnavailableError(ConsistencyError):
    """The driver is assigned to another vehicle."""

class TripNotEditableError(ConsistencyError):
    """Only scheduled trips can be changed."""

class InvalidTripTransitionError(ConsistencyError):
    """The trip cannot move to that status."""

class TripInProgressError(ConsistencyError):
    """Finish or cancel the trip first."""

class CrewBusyError(ConsistencyError):
    """The vehicle or driver is already on a trip in progress."""


# Not found (always owner-scoped, so another owner's row is also "not found")

class NotFoundError(FleetDomainError, FatalException):
    """Record not found."""
    status_code = 404

class VehicleNotFoundError(NotFoundError):
    """Vehicle not found."""

class DriverNotFoundError(NotFoundError):
    """Driver not found."""

class TransactionNotFoundError(NotFoundError):
    """Transaction not found."""

class TripNotFoundError(NotFoundError):
    """Trip not found."""

class PaymentOrderNotFoundError(NotFoundError):
    """Payment order not found."""


# Collaborators (SMS gateway, payment gateway, database)

class CollaboratorError(FleetDomainError, RetryableException):
    """Something went wrong. Please try again."""
    status_code = 503

class OtpDeliveryError(CollaboratorError):
    """Failed to send OTP. Please try again."""

class PaymentGatewayError(CollaboratorError):
    """Unable to start payment. Please try again."""

class DatabaseQueryError(CollaboratorError):
    """Raised when a database query fails or returns unexpected results."""
