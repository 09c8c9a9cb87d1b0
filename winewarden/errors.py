"""Error types raised by winewarden."""


class WineWardenError(Exception):
    """Base class for all winewarden errors."""

    _label = ""

    def __init__(self, detail: object) -> None:
        self.detail = str(detail)
        message = f"{self._label}: {self.detail}" if self._label else self.detail
        super().__init__(message)


class InvalidConfigError(WineWardenError):
    """The configuration could not be parsed or is inconsistent."""

    _label = "invalid configuration"


class WineWardenIOError(WineWardenError):
    """A file or socket operation failed."""

    _label = "io error"


class PolicyViolationError(WineWardenError):
    """An action was refused by policy."""

    _label = "policy violation"