class ClassNotesError(Exception):
    """Base class for errors raised by the class-notes services."""

    status_code = 500

    def __init__(self, detail: str) -> None:
        super().__init__(detail)
        self.detail = detail


class ValidationError(ClassNotesError):
    status_code = 400


class NotFoundError(ClassNotesError):
    status_code = 404


class GatewayError(ClassNotesError):
    """An upstream embedding or completion call failed."""

    status_code = 502
