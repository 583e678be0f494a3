# Registry error taxonomy
from typing import Dict, Optional


class RegistryError(Exception):
    """Base class for errors raised by the patient registry."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationFailed(RegistryError):
    """One or more fields were rejected. `errors` maps field -> {"code", "message"}."""

    def __init__(self, errors: Dict[str, Dict[str, str]], message: str = "Validation failed"):
        super().__init__(message)
        self.errors = dict(errors)


class AlreadyExists(RegistryError):
    def __init__(self, hn: str):
        super().__init__(f"Patient {hn} already exists")
        self.hn = hn


class NotFound(RegistryError):
    def __init__(self, hn: str):
        super().__init__(f"Patient {hn} not found")
        self.hn = hn


class InternalFailure(RegistryError):
    """Unexpected store fault (e.g. backing storage unavailable)."""

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.cause = cause
