"""Code-mode exception types."""


class CodeModeError(Exception):
    """Base class for code-mode failures."""


class CapabilityError(CodeModeError):
    """A capability call failed; raised inside the script and catchable there."""


class TransportError(CodeModeError):
    """Malformed, unknown, or undeliverable RPC message."""


class SandboxSpawnError(CodeModeError):
    """The worker process could not be started."""


class ScriptTimeoutError(TimeoutError):
    """Raised when script execution exceeds its deadline."""

    pass
