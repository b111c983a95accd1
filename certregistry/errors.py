class CertRegistryError(Exception):
    status_code = 500

    def __init__(self, message):
        super().__init__(message)
        self.message = message


class ValidationError(CertRegistryError):
    status_code = 400


class Unauthorized(CertRegistryError):
    status_code = 401


class NotFound(CertRegistryError):
    status_code = 404


class Conflict(CertRegistryError):
    status_code = 409


class ExternalServiceError(CertRegistryError):
    """The chain client is unavailable or rejected a call."""


class StorageError(CertRegistryError):
    """A write failed on both the primary store and the mirror."""
