class BuyerError(Exception):
    """Base class for expected, user-facing buyer outcomes."""


class ValidationError(BuyerError):
    def __init__(self, errors):
        self.errors = list(errors or [])
        self.message = self.errors[0]["message"] if self.errors else "Invalid data"
        super().__init__(self.message)


class DuplicateError(BuyerError):
    """A create collided with an existing record of the same owner."""

    def __init__(self, existing):
        self.existing = existing
        super().__init__(
            "Duplicate buyer found: %s (Phone: %s)" % (existing.get("fullName"), existing.get("phone"))
        )


class ConflictError(BuyerError):
    def __init__(self, message="Record has been modified. Please refresh and try again."):
        self.message = message
        super().__init__(message)


class NotFoundError(BuyerError):
    def __init__(self, message="Buyer not found"):
        self.message = message
        super().__init__(message)
