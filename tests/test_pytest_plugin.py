from __future__ import annotations

from sawchain.config import SawchainSettings
from sawchain.core import Sawchain
from sawchain.repositories.kubectl_store import KubectlStore
from sawchain.repositories.store import ResourceStore


def test_plugin_fixtures_build_a_kubectl_backed_instance(
    sawchain: Sawchain,
    sawchain_store: ResourceStore,
    sawchain_settings: SawchainSettings,
) -> None:
    assert isinstance(sawchain_store, KubectlStore)
    assert sawchain_store.kubectl_binary == sawchain_settings.kubectl_binary
    assert sawchain.defaults.timeout == sawchain_settings.timeout
    assert sawchain.defaults.interval == sawchain_settings.interval
