"""Runtime exceptions: engine lifecycle misuse and test-runner failures."""

from typing import Optional

from .base import TestWardenError


class LifecycleError(TestWardenError):
    """Base class for start/stop misuse of the maintenance engine."""

    pass


class AlreadyRunningError(LifecycleError):
    """Raised by ``start()`` when the engine is already running."""

    def __init__(self) -> None:
        super().__init__("self-maintaining infrastructure is already running")


class NotRunningError(LifecycleError):
    """Raised by ``stop()`` when the engine is not running."""

    def __init__(self) -> None:
        super().__init__("self-maintaining infrastructure is not running")


class TestRunnerError(TestWardenError):
    """Raised when the external test runner cannot be started at all.

    A runner that starts and exits non-zero is not an error: its output is
    still parsed.
    """

    def __init__(self, command: str, reason: str, returncode: Optional[int] = None):
        details = {"command": command, "reason": reason}
        if returncode is not None:
            details["returncode"] = str(returncode)
        super().__init__(f"Test runner failed: {command}", details=details)
        self.command = command
        self.reason = reason
        self.returncode = returncode
