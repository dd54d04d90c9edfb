class ServiceError(Exception):
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(ServiceError):
    status_code = 400

    def __init__(self, message: str, field: str = None):
        super().__init__(message)
        self.field = field


class BookingNotFound(ServiceError):
    status_code = 404

    def __init__(self, booking_id: str):
        super().__init__("Booking not found")
        self.booking_id = booking_id


class InvalidTransition(ServiceError):
    """Booking status change outside the allowed edges."""
    status_code = 409

    def __init__(self, current: str, target: str):
        super().__init__(f"Cannot move booking from {current} to {target}")
        self.current = current
        self.target = target


class PaymentStateError(ServiceError):
    status_code = 409


class PaymentProviderError(ServiceError):
    """Upstream payment provider failed or rejected the request."""
    status_code = 502
