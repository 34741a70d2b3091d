from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True)
class FitRepoError(Exception):
    """Base exception for errors in the fit_repo module."""


@dataclass(frozen=True)
class InvalidBudgetError(FitRepoError):
    """Raised when a budget, limit or ratio is zero or negative."""

    name: str
    value: float
    message: str = "Budget values must be positive."

    def __str__(self) -> str:
        return f"{self.message} {self.name}={self.value!r}"


@dataclass(frozen=True)
class SettingsFileError(FitRepoError):
    """Raised when a YAML settings file cannot be read or is not a mapping."""

    path: Path
    reason: str

    def __str__(self) -> str:
        return f"Invalid settings file {self.path}: {self.reason}"
