from typing import Dict, Optional


class DealSignalError(Exception):
    """Base class for errors that map onto an HTTP response."""
    status_code = 500

    def __init__(self, reason: str, headers: Optional[Dict[str, str]] = None):
        super().__init__(reason)
        self.reason = reason
        self.headers = headers


class DealValidationError(DealSignalError):
    status_code = 400


class UnauthenticatedError(DealSignalError):
    status_code = 401


class AdminAuthError(DealSignalError):
    def __init__(self, reason: str, status_code: int = 403):
        super().__init__(reason)
        self.status_code = status_code


class StoreResetDisabledError(DealSignalError):
    status_code = 403


class DealNotFoundError(DealSignalError):
    status_code = 404

    def __init__(self, reason: str = "Deal not found"):
        super().__init__(reason)


class DealNotActiveError(DealSignalError):
    status_code = 409

    def __init__(self, reason: str = "Deal is not active"):
        super().__init__(reason)


class DuplicateDealError(DealSignalError):
    status_code = 409


class StoreGuardError(DealSignalError):
    """A write was refused because it would empty a non-empty store."""
    status_code = 409


class RateLimitedError(DealSignalError):
    status_code = 429

    def __init__(self, reason: str, retry_after: int):
        super().__init__(reason, headers={"Retry-After": str(retry_after)})
        self.retry_after = retry_after


class StoreWriteError(DealSignalError):
    status_code = 500


class AffiliateConfigError(DealSignalError):
    status_code = 503


class InvalidTransitionError(DealSignalError):
    status_code = 409
