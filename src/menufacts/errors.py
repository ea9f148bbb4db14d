"""
Domain exceptions. Services raise these; routes translate them to HTTPException,
the background pipeline converts them into a failed job record.
"""


class SplitError(Exception):
    """The source document could not be divided into extractable units."""


class EmptyDocumentError(SplitError):
    pass


class ScannedDocumentError(SplitError):
    pass


class OracleUnavailableError(Exception):
    """The extraction model cannot be called at all (no credentials, unknown provider)."""


class ReviewError(Exception):
    status_code = 400

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details


class JobNotFoundError(ReviewError):
    status_code = 404


class ReviewRejectedError(ReviewError):
    pass


class UploadRejectedError(Exception):
    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
