"""pytest fixtures for Sawchain, registered through the ``pytest11`` entry point."""

from __future__ import annotations

from collections.abc import Iterator

import pytest

from sawchain.config import SawchainSettings, load_settings
from sawchain.core import Sawchain
from sawchain.logging_config import bound_test_context, configure_logging
from sawchain.repositories.kubectl_store import KubectlStore
from sawchain.repositories.store import ResourceStore
from sawchain.services.matchers import ResourceMatcher


def pytest_addoption(parser: pytest.Parser) -> None:
    group = parser.getgroup("sawchain")
    group.addoption(
        "--sawchain-store",
        action="store",
        default="kubectl",
        choices=("kubectl", "memory"),
        help="Resource store backing the `sawchain` fixture.",
    )


def pytest_assertrepr_compare(op: str, left: object, right: object) -> list[str] | None:
    """Explain failed ``assert handle == sc.match_yaml(...)`` comparisons."""
    if op != "==":
        return None
    for matcher, actual in ((right, left), (left, right)):
        if isinstance(matcher, ResourceMatcher):
            mismatch = matcher.mismatch(actual)
            if mismatch is not None:
                return [f"resource does not match {matcher.description}", mismatch]
    return None


@pytest.fixture(scope="session")
def sawchain_settings() -> SawchainSettings:
    settings = load_settings()
    configure_logging(settings)
    return settings


@pytest.fixture(autouse=True)
def _sawchain_log_context(  # pyright: ignore[reportUnusedFunction]
    request: pytest.FixtureRequest,
) -> Iterator[None]:
    with bound_test_context(request.node.nodeid):
        yield


@pytest.fixture
def sawchain_store(
    request: pytest.FixtureRequest, sawchain_settings: SawchainSettings
) -> ResourceStore:
    if request.config.getoption("--sawchain-store") == "memory":
        from sawchain.repositories.memory_store import InMemoryStore

        return InMemoryStore()
    return KubectlStore(
        kubectl_binary=sawchain_settings.kubectl_binary,
        kubeconfig=sawchain_settings.kubeconfig,
        timeout_seconds=sawchain_settings.kubectl_timeout_seconds,
    )


@pytest.fixture
def sawchain(sawchain_store: ResourceStore, sawchain_settings: SawchainSettings) -> Sawchain:
    return Sawchain(sawchain_store, settings=sawchain_settings)
