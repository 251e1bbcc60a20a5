from __future__ import annotations

import logging
from collections.abc import Callable
from typing import NoReturn

import pytest

from sawchain.models.resource import ResourceKey
from sawchain.repositories.store import NotFoundError, StoreError
from sawchain.telemetry import TelemetryClient

LOGGER = logging.getLogger("sawchain.diagnostics")
FAILURE_TAG = "[FAILED]"

FailHandler = Callable[[str], object]


class SawchainError(Exception):
    category = "sawchain error"

    def __str__(self) -> str:
        return self.args[0] if self.args else self.category


class InvalidArgumentsError(SawchainError):
    category = "invalid arguments"


class InvalidTemplateError(SawchainError):
    category = "invalid template/bindings"

    def __init__(self, message: str, *, kind: str) -> None:
        super().__init__(message)
        self.kind = kind


class StoreMutationError(SawchainError):
    def __init__(self, *, verb: str, source: str, key: ResourceKey, cause: StoreError) -> None:
        super().__init__(f"{key}: {cause}")
        self.verb = verb
        self.source = source
        self.key = key
        self.cause = cause
        self.category = f"failed to {verb} with {source}"

    @property
    def is_not_found(self) -> bool:
        return isinstance(self.cause, NotFoundError)


class StoreReadError(SawchainError):
    def __init__(
        self, *, source: str, key: ResourceKey, cause: StoreError, verb: str = "get"
    ) -> None:
        super().__init__(f"{key}: {cause}")
        self.verb = verb
        self.source = source
        self.key = key
        self.cause = cause
        self.category = f"failed to {verb} with {source}"


class CheckMismatchError(SawchainError):
    category = "failed to check with template"

    def __init__(self, message: str, *, key: ResourceKey) -> None:
        super().__init__(f"{key}: {message}")
        self.key = key


class ConsistencyTimeoutError(SawchainError):
    def __init__(
        self,
        *,
        verb: str,
        key: ResourceKey | None,
        detail: str,
        last_read_error: StoreError | None,
        elapsed_seconds: float,
        attempts: int,
    ) -> None:
        super().__init__(detail)
        self.verb = verb
        self.key = key
        self.detail = detail
        self.last_read_error = last_read_error
        self.elapsed_seconds = elapsed_seconds
        self.attempts = attempts
        self.category = f"{verb} not reflected within timeout"

    @property
    def store_unreachable(self) -> bool:
        return self.last_read_error is not None and not isinstance(
            self.last_read_error, NotFoundError
        )

    def __str__(self) -> str:
        state = "store unreachable" if self.store_unreachable else "not yet consistent"
        message = (
            f"{self.detail} ({state}; {self.attempts} attempts over {self.elapsed_seconds:.2f}s)"
        )
        if self.last_read_error is not None:
            message = f"{message}; last read error: {self.last_read_error}"
        return message


class StateCopyError(SawchainError):
    category = "failed to save state to object"


class FileWriteError(SawchainError):
    category = "failed to write file"


class DiagnosticsReporter:
    """Turns Sawchain errors into immediate test failures."""

    def __init__(
        self,
        *,
        fail_handler: FailHandler | None = None,
        telemetry: TelemetryClient | None = None,
    ) -> None:
        self._fail_handler = fail_handler if fail_handler is not None else _pytest_fail
        self._telemetry = telemetry if telemetry is not None else TelemetryClient.disabled()

    def format(self, error: SawchainError) -> str:
        return f"{FAILURE_TAG} {error.category}: {error}"

    def fail(self, error: SawchainError) -> NoReturn:
        message = self.format(error)
        LOGGER.warning("sawchain failure category=%s detail=%s", error.category, error)
        self._telemetry.emit(
            "sawchain.diagnostic.reported",
            category=error.category,
            error_type=type(error).__name__,
        )
        self._fail_handler(message)
        # Fail handlers must not return.
        raise AssertionError(message) from error


def _pytest_fail(message: str) -> NoReturn:
    pytest.fail(message, pytrace=False)
