"""Exception types shared across the shell."""


class TubeshellError(Exception):
    """Base class for shell errors."""


class ConfigError(TubeshellError, ValueError):
    """Raised when a plugin config cannot be stored (e.g. not JSON-serializable)."""


class DuplicatePluginError(TubeshellError):
    """Raised when two plugins register under the same metadata name."""

    def __init__(self, name: str):
        super().__init__(f"Plugin already registered: {name}")
        self.name = name


class PluginNotFoundError(TubeshellError, KeyError):
    """Raised when a plugin name is not registered with the host."""

    def __init__(self, name: str):
        super().__init__(f"Plugin not found: {name}")
        self.name = name

    def __str__(self) -> str:
        return self.args[0]


class ProxyError(TubeshellError):
    """Raised by proxy handlers; turned into an error marker for the caller."""


class RendererError(TubeshellError):
    """Raised when a renderer context cannot run a program (closed, navigating, crashed)."""
