"""Custom exceptions for trip management."""


class TripServiceError(Exception):
    """Base class for errors raised by the trip services."""
    status_code = 400
    error_code = "trip_error"

    def __init__(self, message=None):
        super().__init__(message or self.__doc__)
        self.message = message or self.__doc__


class TripNotFoundError(TripServiceError):
    """Trip not found."""
    status_code = 404
    error_code = "trip_not_found"


class OfferNotFoundError(TripServiceError):
    """Trip offer not found."""
    status_code = 404
    error_code = "offer_not_found"


class ChallengeNotFoundError(TripServiceError):
    """Verification challenge not found."""
    status_code = 404
    error_code = "challenge_not_found"


class InvalidStateError(TripServiceError):
    """Operation is not allowed in the trip's current status."""
    status_code = 409
    error_code = "invalid_state"


class UnauthorizedError(TripServiceError):
    """Resource does not belong to the caller."""
    status_code = 403
    error_code = "unauthorized"


class InvalidOtpError(TripServiceError):
    """The OTP does not match."""
    status_code = 400
    error_code = "invalid_otp"


class ChallengeExpiredError(TripServiceError):
    """Verification challenge expired or already used."""
    status_code = 410
    error_code = "challenge_expired"


class DriverIneligibleError(TripServiceError):
    """Driver is not eligible for this trip."""
    status_code = 409
    error_code = "driver_ineligible"


class TripValidationError(TripServiceError):
    """Missing or malformed trip data."""
    status_code = 400
    error_code = "validation_error"


class OtpDeliveryError(TripServiceError):
    """The OTP could not be delivered to the customer."""
    status_code = 502
    error_code = "otp_delivery_failed"


class PricingError(TripServiceError):
    """Fare could not be computed."""
    status_code = 400
    error_code = "pricing_error"
