"""V4V analytics exceptions."""


class V4VError(Exception):
    """Base exception for v4v-analytics."""


class ConfigurationError(V4VError):
    """Required configuration is missing or invalid."""

    def __init__(self, message: str, setting: str | None = None):
        self.setting = setting
        super().__init__(message)


class WalletError(V4VError):
    """The wallet rejected or failed a request."""

    def __init__(self, message: str, code: str | None = None):
        self.code = code
        super().__init__(f"Wallet error {code}: {message}" if code else message)

    @property
    def is_transient(self) -> bool:
        return self.code == "INTERNAL"


class WalletTimeoutError(WalletError):
    """The wallet did not reply in time."""

    def __init__(self, method: str, timeout: float):
        self.method = method
        self.timeout = timeout
        super().__init__(f"reply timeout: no response to {method} after {timeout:g}s")

    @property
    def is_transient(self) -> bool:
        return True


class WalletUnreachableError(V4VError):
    """Retries exhausted and no cached or fetched data to fall back on."""

    def __init__(self, attempts: int, cause: BaseException | None = None):
        self.attempts = attempts
        self.cause = cause
        super().__init__(
            f"Wallet unreachable after {attempts} attempts - is your wallet running?"
        )
