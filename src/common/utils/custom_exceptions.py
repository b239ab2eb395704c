class NotFoundException(Exception):
    def __init__(self, resource: str, identifier: str, status_code: int = 404):
        self.resource = resource
        self.identifier = identifier
        self.status_code = status_code

    def __str__(self):
        return f"{self.resource} '{self.identifier}' not found"


class Forbidden(Exception):
    pass


# validation
class InvalidDateRange(ValueError):
    pass


class InvalidGuestCount(ValueError):
    pass


class AmountMismatch(ValueError):
    pass


# conflicts: caller must retry with different input
class ConflictError(Exception):
    pass


class RoomUnavailable(ConflictError):
    pass


class OverlapConflict(ConflictError):
    pass


class AlreadyProcessed(ConflictError):
    pass


class InvalidTransition(ConflictError):
    pass


class InvoiceAlreadySettled(ConflictError):
    pass


class InvoiceNotSettled(ConflictError):
    pass


# external dependencies
class GatewayError(Exception):
    def __init__(self, message: str, status_code: int = None, raw_response=None):
        super().__init__(message)
        self.status_code = status_code
        self.raw_response = raw_response


class GatewayTimeout(GatewayError):
    pass


class PaymentGatewayUnconfigured(GatewayError):
    pass


class PaymentFailed(GatewayError):
    pass
