"""Error types raised by the freshen engine.

Every runtime failure derives from FreshenError so callers can branch on
``isinstance`` and on the ``code`` attribute.
"""


class FreshenError(Exception):
    """Base error for all freshen runtime errors."""

    code: str = "ERR_UNKNOWN"

    def __init__(self, message: str, code: str | None = None):
        super().__init__(message)
        if code is not None:
            self.code = code


class ConfigError(FreshenError):
    """Invalid configuration: bad enum value, bad filter pattern, bad addon."""

    code = "ERR_CONFIG"


class RegistryError(FreshenError):
    """The registry answered with a non-2xx HTTP status."""

    code = "ERR_REGISTRY"

    def __init__(self, message: str, status: int, url: str):
        super().__init__(message)
        self.status = status
        self.url = url


class ResolveError(FreshenError):
    """Network or transport failure while talking to a registry."""

    code = "ERR_RESOLVE"


class CacheError(FreshenError):
    """The persistent registry cache could not be read or written."""

    code = "ERR_CACHE"


class WriteError(FreshenError):
    """A manifest or catalog file could not be read, parsed or written."""

    code = "ERR_WRITE"

    def __init__(self, message: str, result=None):
        super().__init__(message)
        self.result = result


class AddonError(FreshenError):
    """A lifecycle hook raised; fatal for the whole run."""

    code = "ERR_ADDON"

    def __init__(
        self,
        message: str,
        addon_name: str,
        hook: str,
        package_name: str | None = None,
    ):
        super().__init__(message)
        self.addon_name = addon_name
        self.hook = hook
        self.package_name = package_name
