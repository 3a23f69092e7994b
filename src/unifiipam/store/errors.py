"""Resource store exception classes."""

from dataclasses import dataclass


class StoreError(Exception):
    """Base exception for resource store operations."""

    pass


class NotFoundError(StoreError):
    """The resource does not exist."""

    def __init__(self, kind: str, namespace: str, name: str):
        self.kind = kind
        self.namespace = namespace
        self.name = name
        super().__init__(f"{kind} {namespace}/{name} not found")


class AlreadyExistsError(StoreError):
    """A resource with the same kind, namespace and name already exists."""

    def __init__(self, kind: str, namespace: str, name: str):
        self.kind = kind
        self.namespace = namespace
        self.name = name
        super().__init__(f"{kind} {namespace}/{name} already exists")


class ConflictError(StoreError):
    """The update was based on a stale resource version."""

    def __init__(self, kind: str, namespace: str, name: str, expected: int, actual: int):
        self.kind = kind
        self.namespace = namespace
        self.name = name
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"{kind} {namespace}/{name} was modified "
            f"(resource version {expected} is stale, current is {actual})"
        )


@dataclass
class FieldError:
    """One rejected field in an admission decision."""

    field: str
    message: str

    def __str__(self) -> str:
        return f"{self.field}: {self.message}"


class AdmissionDeniedError(StoreError):
    """An admission hook rejected the request; nothing was persisted."""

    def __init__(self, kind: str, name: str, errors: list[FieldError]):
        self.kind = kind
        self.name = name
        self.errors = errors
        details = "; ".join(str(e) for e in errors)
        super().__init__(f"{kind} {name} denied: {details}")
