# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
stackbak Exceptions - Custom exceptions for the stackbak package.
"""


class StackBakError(Exception):
    """Base exception for all stackbak errors."""

    def __init__(self, message: str, details: dict | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class ConfigurationError(StackBakError):
    """Raised when configuration is invalid."""

    pass


class WorkdirNotFoundError(StackBakError):
    """Raised when no working directory can be resolved."""

    pass


class MissingPrerequisiteError(StackBakError):
    """Raised when a required external command is not installed."""

    pass


class MissingConfigFileError(StackBakError):
    """Raised when one or more site files are absent."""

    def __init__(self, message: str, missing: list[str]):
        self.missing = list(missing)
        super().__init__(message, details={"missing": self.missing})


class MissingBundleError(StackBakError):
    """Raised when the bundle requested for a restore does not exist."""

    pass


class CorruptBundleError(StackBakError):
    """Raised when a bundle lacks the directory or files it must contain."""

    pass


class CollaboratorError(StackBakError):
    """Raised when an external command (docker, database, archive tool) fails."""

    pass


class ServiceNotRunningError(CollaboratorError):
    """Raised when a service that must be running is not."""

    pass


class ScheduleError(StackBakError):
    """Raised when schedule input or the schedule file is invalid."""

    pass
