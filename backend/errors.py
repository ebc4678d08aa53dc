"""Error taxonomy shared by the ledger, the access gate and the lifecycle services."""


class LifecycleError(Exception):
    """Base class."""


class NotFound(LifecycleError):
    """No live object matches the id or token."""


class Forbidden(LifecycleError):
    """The authenticated caller does not own the object."""


class Expired(LifecycleError):
    """The object exists but is past its expiry."""


class QuotaExceeded(LifecycleError):
    """The download limit has been reached."""


class Conflict(LifecycleError):
    """A concurrent mutation interfered; the caller may retry."""


class TooLarge(LifecycleError):
    """The upload exceeds the configured size ceiling."""


class StorageFailure(LifecycleError):
    """The ledger or the blob store failed."""


class BlobMissing(StorageFailure):
    pass
