from fastapi import HTTPException


class StoreError(HTTPException):
    status_code = 500
    message = "Internal server error"

    def __init__(self, detail=None, headers=None):
        super().__init__(status_code=self.status_code, detail=detail or self.message, headers=headers)


class InvalidInput(StoreError):
    status_code = 400
    message = "Invalid request"


class InvalidCredentials(StoreError):
    # Same status and message for unknown email and wrong password
    status_code = 400
    message = "Invalid credentials"


class Unauthenticated(StoreError):
    status_code = 401
    message = "Invalid token"


class Forbidden(StoreError):
    status_code = 403
    message = "Requires manager role"


class NotFound(StoreError):
    status_code = 404
    message = "Not found"


class UnsupportedMediaType(StoreError):
    status_code = 400
    message = "Only images are allowed!"


class PayloadTooLarge(StoreError):
    status_code = 413
    message = "Request body too large"
