class JigsawError(Exception):
    """Base class for every failure the jigsaw core reports to its callers."""


class NotFoundFailure(JigsawError):
    """No matching user or record."""


class GenerationFailure(JigsawError):
    """A prompt or image API call failed or returned unusable data."""


class StoreFailure(JigsawError):
    """Reading from or writing to the database failed."""


class AlreadyCompleteFailure(JigsawError):
    """The user already owns every piece. Informational, not an error."""


class AuthFailure(JigsawError):
    """Bad credentials or an unusable signup request."""


class UsernameTakenFailure(AuthFailure):
    """Signup with a username that already exists."""
