"""
Error Taxonomy

Exceptions raised by the addressing, codec and overzoom layers. Every error
carries a stable ``kind`` string so batch runs can aggregate and report
failures without inspecting exception classes.

Absence of a tile is not an error anywhere in this package: archives return
``None`` and the overzoom orchestrator reports an EMPTY outcome.
"""


class TileError(Exception):
    """Base class for all tile processing errors."""

    kind = "tile_error"


class OutOfRangeError(TileError, ValueError):
    """Tile address or zoom arithmetic used outside its valid range."""

    kind = "out_of_range"


class PrecisionLossError(TileError, ArithmeticError):
    """Layer extent cannot be subdivided exactly for the requested zoom delta."""

    kind = "precision_loss"


class PayloadError(TileError):
    """A stored tile blob could not be turned into a vector tile."""

    kind = "payload_error"


class CompressionError(PayloadError):
    """The blob could not be decompressed with the archive's compression scheme."""

    kind = "compression_error"


class CorruptPayloadError(PayloadError):
    """The decompressed blob failed structural validation."""

    kind = "corrupt_payload"


class ArchiveError(TileError):
    """Archive misuse, e.g. missing metadata or writing to a read-only archive."""

    kind = "archive_error"
