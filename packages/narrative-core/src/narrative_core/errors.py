"""
Exception classes for the narrative engine.

This module defines the only errors the engine surfaces:
- ConfigurationError: A timeline or chain was built from invalid input
- UnknownCommandError: A host asked a vignette for a command it does not have

Stale callbacks are never raised; the scheduler drops them and counts
them in TimerScheduler.suppressed instead.

Per project patterns:
- Inherit from Exception for base exception type
- Store context data in attributes for error handling
- Include descriptive message with relevant details
"""


class ConfigurationError(Exception):
    """
    Raised when a timeline, stage or chain is rejected at construction.

    Covers empty stage/step lists, non-positive stage durations,
    negative step offsets and duplicate stage ids. Construction fails
    fast so a controller never enters PLAYING with a bad configuration.

    Attributes:
        reason: What was wrong with the configuration
        subject: Stage id or step label the error refers to (if any)
    """

    def __init__(self, reason: str, subject: str | None = None) -> None:
        self.reason = reason
        self.subject = subject
        if subject is not None:
            super().__init__(f"Invalid configuration for '{subject}': {reason}")
        else:
            super().__init__(f"Invalid configuration: {reason}")


class UnknownCommandError(Exception):
    """
    Raised when a host invokes a command the vignette does not define.

    Attributes:
        command: The requested command name
        available: Command names the vignette does define
    """

    def __init__(self, command: str, available: list[str]) -> None:
        self.command = command
        self.available = available
        names = ", ".join(available) if available else "none"
        super().__init__(f"Unknown command '{command}' (available: {names})")
