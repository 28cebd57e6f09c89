"""Tournament engine exceptions."""


class TournamentError(Exception):
    """Base exception for tournament orchestration errors."""

    status_code = 500

    def __init__(self, message: str, user_message: str | None = None):
        super().__init__(message)
        self.message = message
        self.user_message = user_message or message


class ValidationError(TournamentError):
    """Raised when input or tournament state fails validation."""

    status_code = 400


class ConflictError(TournamentError):
    """Raised when an operation collides with the current state of a resource."""

    status_code = 409


class NotFoundError(TournamentError):
    """Raised when a tournament, match, participant or roster entry is unknown."""

    status_code = 404

    def __init__(self, resource: str, resource_id: object):
        super().__init__(
            f"{resource} {resource_id} not found",
            f"{resource.capitalize()} not found",
        )
        self.resource = resource
        self.resource_id = resource_id
