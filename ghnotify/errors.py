"""Error taxonomy for the webhook relay."""

from enum import Enum
from typing import Optional


class GHNotifyError(Exception):
    """Base class for all relay errors."""


class ConfigError(GHNotifyError):
    """Raised when the configuration file cannot be loaded or is invalid."""


class AuthErrorKind(str, Enum):
    """Why a delivery failed authentication."""

    INVALID_SIGNATURE = "InvalidSignature"
    INVALID_TOKEN = "InvalidToken"


class AuthError(GHNotifyError):
    """Raised when a delivery fails signature or token verification."""

    def __init__(self, kind: AuthErrorKind, message: str = ""):
        self.kind = kind
        super().__init__(message or kind.value)


class ParseError(GHNotifyError):
    """Raised when a delivery body is malformed."""

    kind = "Malformed"


class DispatchErrorKind(str, Enum):
    """Whether a failed send is worth retrying."""

    TRANSIENT = "Transient"
    PERMANENT = "Permanent"


class DispatchError(GHNotifyError):
    """Raised by the provider client when a send fails.

    Attributes:
        transient: Whether the failure is worth retrying.
        status_code: HTTP status returned by the provider, if any.
        retry_after: Seconds the provider asked us to wait, if any.
    """

    def __init__(
        self,
        message: str,
        transient: bool,
        status_code: Optional[int] = None,
        retry_after: Optional[float] = None,
    ):
        self.transient = transient
        self.status_code = status_code
        self.retry_after = retry_after
        super().__init__(message)

    @property
    def kind(self) -> DispatchErrorKind:
        return DispatchErrorKind.TRANSIENT if self.transient else DispatchErrorKind.PERMANENT
