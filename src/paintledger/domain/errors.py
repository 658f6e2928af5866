class AppError(Exception):
    """Base app error."""


class ValidationError(AppError):
    pass


class NotFoundError(AppError):
    pass


class InsufficientStockError(AppError):
    pass


class InconsistentStateError(AppError):
    """A mutation would break the link between stock, lines and money."""


class AuthorizationError(AppError):
    pass
