"""Field error helpers shared by the admission hooks."""

from unifiipam.models.resources import Resource
from unifiipam.store.errors import AdmissionDeniedError, FieldError


def required(path: str, message: str = "") -> FieldError:
    return FieldError(path, f"Required value: {message}" if message else "Required value")


def invalid(path: str, value: object, message: str) -> FieldError:
    return FieldError(path, f"Invalid value: {value!r}: {message}")


def not_found(path: str, value: object) -> FieldError:
    return FieldError(path, f"Not found: {value!r}")


def forbidden(path: str, message: str) -> FieldError:
    return FieldError(path, f"Forbidden: {message}")


def deny_if_errors(obj: Resource, errors: list[FieldError]) -> None:
    """Raise AdmissionDeniedError when any field error was collected."""
    if errors:
        raise AdmissionDeniedError(obj.KIND, obj.metadata.name, errors)
