"""Error kinds raised while reading or assembling .vox files."""
from enum import Enum
from typing import Optional


class ErrorKind(Enum):
    """Failure kinds reported by the .vox codec."""

    # Framing
    UNEXPECTED_EOF = "UnexpectedEof"
    TRAILING_BYTES = "TrailingBytes"
    INVALID_MAGIC = "InvalidMagic"
    INVALID_TAG = "InvalidTag"
    CONTAINER_TOO_DEEP = "ContainerTooDeep"
    FILE_VERSION_UNKNOWN = "FileVersionUnknown"
    INVALID_MAIN_CHUNK = "InvalidMainChunk"
    UNKNOWN_CHUNK = "UnknownChunk"

    # Primitives
    INVALID_UTF8_STRING = "InvalidUTF8String"

    # Chunk payloads
    INVALID_MATT_ID = "InvalidMattId"
    INVALID_MATT_TYPE = "InvalidMattType"
    INVALID_MATT_PROPERTY = "InvalidMattProperty"
    INVALID_TRN_HIDDEN = "InvalidTRNHidden"
    INVALID_TRN_RESERVED = "InvalidTRNReserved"
    INVALID_TRN_FRAMES = "InvalidTRNFrames"
    INVALID_TRN_PROPERTY = "InvalidTRNProperty"
    INVALID_SHP_MODEL_COUNT = "InvalidSHPModelCount"
    INVALID_MATL_ID = "InvalidMatlId"
    INVALID_MATL_TYPE = "InvalidMatlType"
    INVALID_MATL_PROPERTY = "InvalidMatlProperty"
    INVALID_LAYR_RESERVED = "InvalidLayrReserved"
    INVALID_LAYR_ID = "InvalidLayrId"
    INVALID_LAYR_PROPERTY = "InvalidLayrProperty"

    # Scene assembly
    NON_ALTERNATING_MODEL = "NonAlternatingModel"
    INVALID_SCENE = "InvalidScene"


class VoxError(ValueError):
    """Raised when .vox data cannot be read or assembled.

    Attributes:
        kind: The ErrorKind identifying the failure
        value: Offending value (id, version, count, tag), if any
    """

    def __init__(self, kind: ErrorKind, value=None, detail: Optional[str] = None):
        self.kind = kind
        self.value = value
        self.detail = detail

        message = kind.value
        if value is not None:
            message += f"({value!r})"
        if detail:
            message += f": {detail}"
        super().__init__(message)

    def matches(self, kind: ErrorKind, value=None) -> bool:
        """Return True if this error has the given kind (and value, if given)."""
        if self.kind is not kind:
            return False
        return value is None or self.value == value
