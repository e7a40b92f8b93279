class LedgerError(Exception):
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(LedgerError):
    status_code = 400


class ConflictError(LedgerError):
    status_code = 409


class NotFoundError(LedgerError):
    status_code = 404


class PermissionDeniedError(LedgerError):
    status_code = 403
