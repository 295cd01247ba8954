"""Error taxonomy shared by the codec, the registry and the external sources.

Every failure the engine reports carries a human-readable message and a
machine-distinguishable ``kind``. ``EmptyResult`` and ``DuplicateLayer`` are
soft outcomes: informational, never a change to the registry.
"""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    UNSUPPORTED_FORMAT = "unsupported_format"
    MALFORMED_ARCHIVE = "malformed_archive"
    EMPTY_RESULT = "empty_result"
    INVALID_GEOMETRY = "invalid_geometry_for_operation"
    INVALID_BBOX = "invalid_bounding_box"
    REMOTE_SERVICE = "remote_service_exception"
    TRANSPORT = "transport_failure"
    DUPLICATE_LAYER = "duplicate_layer"


class WorkbenchError(Exception):
    """Base class for every failure surfaced by the engine."""

    kind: ErrorKind = ErrorKind.UNSUPPORTED_FORMAT
    soft: bool = False

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"kind": self.kind.value, "message": self.message, "soft": self.soft}


class UnsupportedFormat(WorkbenchError):
    """File type or content the codec cannot decode."""

    kind = ErrorKind.UNSUPPORTED_FORMAT

    def __init__(self, message: str, filename: str = "", extension: str = "") -> None:
        super().__init__(message)
        self.filename = filename
        self.extension = extension


class MalformedArchive(WorkbenchError):
    """ZIP/KMZ or multi-file selection lacking its required members."""

    kind = ErrorKind.MALFORMED_ARCHIVE

    def __init__(self, message: str, filename: str = "") -> None:
        super().__init__(message)
        self.filename = filename


class EmptyResult(WorkbenchError):
    """Decode or query succeeded but produced zero features."""

    kind = ErrorKind.EMPTY_RESULT
    soft = True


class InvalidGeometryForOperation(WorkbenchError):
    kind = ErrorKind.INVALID_GEOMETRY


class InvalidBoundingBox(WorkbenchError):
    kind = ErrorKind.INVALID_BBOX

    def __init__(self, message: str, bbox: tuple[float, ...] = ()) -> None:
        super().__init__(message)
        self.bbox = bbox


class RemoteServiceException(WorkbenchError):
    """Capabilities, feature or catalog server answered with a structured error."""

    kind = ErrorKind.REMOTE_SERVICE


class TransportFailure(WorkbenchError):
    """Network or HTTP failure talking to an external service."""

    kind = ErrorKind.TRANSPORT

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class DuplicateLayer(WorkbenchError):
    kind = ErrorKind.DUPLICATE_LAYER
    soft = True

    def __init__(self, message: str, layer_id: str = "") -> None:
        super().__init__(message)
        self.layer_id = layer_id
