"""
Exceptions raised while running the batch-size sweep.
"""

from typing import Optional


class BenchmarkError(Exception):
    """Base exception for sweep failures.

    Carries enough context (batch size, strategy, phase) to reproduce the
    failing trial.
    """

    def __init__(
        self,
        message: str,
        batch_size: Optional[int] = None,
        strategy: Optional[str] = None,
        phase: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.batch_size = batch_size
        self.strategy = strategy
        self.phase = phase

    def with_context(
        self,
        batch_size: Optional[int] = None,
        strategy: Optional[str] = None,
        phase: Optional[str] = None,
    ) -> "BenchmarkError":
        """Fill in any context fields not already set and return self."""
        if self.batch_size is None:
            self.batch_size = batch_size
        if self.strategy is None:
            self.strategy = strategy
        if self.phase is None:
            self.phase = phase
        return self

    def __str__(self) -> str:
        context = []
        if self.batch_size is not None:
            context.append(f"batch_size={self.batch_size}")
        if self.strategy is not None:
            context.append(f"strategy={self.strategy}")
        if self.phase is not None:
            context.append(f"phase={self.phase}")
        if not context:
            return self.message
        return f"{self.message} [{', '.join(context)}]"

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}(message={self.message!r}, "
            f"batch_size={self.batch_size!r}, strategy={self.strategy!r}, "
            f"phase={self.phase!r})"
        )


class ResetFailure(BenchmarkError):
    """Raised when a cluster start/stop/create/delete did not succeed."""

    pass


class ResetTimeoutError(ResetFailure):
    """Raised when a cluster lifecycle command exceeds its timeout."""

    pass


class IngestionFailure(BenchmarkError):
    """Raised when a strategy's submit or flush fails."""

    pass


class DegenerateTimingError(BenchmarkError):
    """Raised when a trial's elapsed time is too small for a finite rate."""

    pass
