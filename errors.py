class ValidationError(ValueError):
    """Rejected input; nothing was written."""


class NotFoundError(ValueError):
    pass
