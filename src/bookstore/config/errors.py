"""Configuration-specific exceptions."""

from __future__ import annotations

from pathlib import Path

from pydantic import ValidationError

from bookstore.errors import BookstoreError


class ConfigError(BookstoreError):
    """Base exception for configuration errors; fatal at process start."""


class ConfigFileNotFoundError(ConfigError):
    def __init__(self, path: Path | str) -> None:
        self.path = str(path)
        super().__init__(f"Configuration file not found: {self.path}")


class ConfigFileFormatError(ConfigError):
    """The file exists but is not a readable JSON object."""

    def __init__(self, path: Path | str, reason: str) -> None:
        self.path = str(path)
        self.reason = reason
        super().__init__(f"Configuration file {self.path} is invalid: {reason}")


class ConfigValidationError(ConfigError):
    """Merged settings failed validation.

    ``problems`` holds ``(location, message)`` pairs such as
    ``("mongodb -> port", "Input should be less than or equal to 65535")``.
    """

    def __init__(self, problems: list[tuple[str, str]]) -> None:
        self.problems = problems
        lines = "\n".join(f"  - {location}: {message}" for location, message in problems)
        super().__init__(f"Configuration validation failed:\n{lines}")

    @classmethod
    def from_validation_error(cls, error: ValidationError) -> ConfigValidationError:
        return cls(
            [
                (" -> ".join(str(part) for part in detail["loc"]) or "<root>", detail["msg"])
                for detail in error.errors()
            ]
        )
