"""Exception taxonomy for toiletmap."""


class ToiletMapError(Exception):
    """Base class for all toiletmap errors."""


class ConfigError(ToiletMapError):
    """Missing or invalid configuration."""


class ValidationError(ToiletMapError):
    """Caller input is missing or invalid and must be corrected."""


class NotFound(ToiletMapError):
    """The referenced record or blob does not exist."""


class ConflictError(ToiletMapError):
    """A write was rejected because the revision token is stale."""


class ImageTooLarge(ToiletMapError):
    """An uploaded image exceeds the size threshold."""

    def __init__(self, size_bytes: int, limit_bytes: int):
        self.size_bytes = size_bytes
        self.limit_bytes = limit_bytes
        size_mb = size_bytes / (1024 * 1024)
        limit_mb = limit_bytes / (1024 * 1024)
        super().__init__(
            f"Image too large: {size_mb:.2f}MB. "
            f"Please use images smaller than {limit_mb:g}MB."
        )


class MalformedRecord(ToiletMapError):
    """A record blob could not be decoded."""


class MissingRequiredField(MalformedRecord):
    """A decoded record lacks one or more required keys."""

    def __init__(self, fields: list[str]):
        self.fields = fields
        super().__init__(f"Missing required field(s): {', '.join(fields)}")


class StoreError(ToiletMapError):
    """The blob store rejected a request."""


class StoreUnavailable(StoreError):
    """Transient I/O failure talking to the blob store (network, timeout)."""
