"""Exception hierarchy for Backforge."""

from __future__ import annotations


class BackforgeError(Exception):
    """Base exception for all Backforge errors."""


class ConfigurationError(BackforgeError):
    """Raised when Backforge is misconfigured.

    Examples: missing API keys, unknown provider, invalid package manager.
    """


class OperationCancelled(BackforgeError):
    """Raised when an operation is aborted through its cancel token."""

    def __init__(self, message: str = "Operation cancelled") -> None:
        super().__init__(message)


class OrchestratorStateError(BackforgeError):
    """Raised when an orchestrator is driven out of its legal state sequence."""


class TypecheckError(BackforgeError):
    """Raised when the type checker could not be run or its output understood.

    Attributes:
        output: Raw checker output, if any was captured.
    """

    def __init__(self, message: str, output: str = "") -> None:
        self.output = output
        super().__init__(message)


class ModelCallError(BackforgeError):
    """Raised when a model provider call could not be made.

    Transport, authentication, or service failures land here, as opposed to
    a model that answered but could not help.

    Attributes:
        provider: Provider name the call was addressed to.
        model: Model tag used for the call.
    """

    def __init__(self, message: str, provider: str = "", model: str = "") -> None:
        self.provider = provider
        self.model = model
        super().__init__(message)
