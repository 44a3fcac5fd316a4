"""
Error taxonomy for the student records service.

Handlers in main.py map each class onto an HTTP status code.
"""


class StudentRecordsError(Exception):
    status_code = 400

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class ValidationError(StudentRecordsError, ValueError):
    """Bad input: out-of-range score, empty subject, missing field."""

    status_code = 422


class ConflictError(StudentRecordsError):
    """Something with the same key already exists."""

    status_code = 409


class NotFoundError(StudentRecordsError):
    status_code = 404
