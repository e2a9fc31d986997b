"""Domain errors raised by the AppDeck services.

Each carries the HTTP status the API maps it to. Services raise these
synchronously; nothing in the core retries.
"""


class AppDeckError(Exception):
    """Base exception for service-level failures."""

    status_code: int = 400


class UnauthorizedError(AppDeckError):
    """Caller does not own the app that scopes the resource.

    Raised for a missing app and for an app owned by someone else alike.
    """

    status_code = 403

    def __init__(self, message: str = "Unauthorized") -> None:
        super().__init__(message)


class NotFoundError(AppDeckError):
    """A referenced record id does not resolve."""

    status_code = 404

    def __init__(self, resource: str, resource_id: object) -> None:
        self.resource = resource
        self.resource_id = resource_id
        super().__init__(f"{resource} not found")


class DuplicateKeyError(AppDeckError):
    """(app, key, environment) already taken."""

    status_code = 409

    def __init__(self, key: str, environment: str) -> None:
        self.key = key
        self.environment = environment
        super().__init__(f'Environment variable "{key}" already exists for {environment}')


class ValidationError(AppDeckError, ValueError):
    """Input rejected before any store mutation."""

    status_code = 422
