from sawchain.config import SawchainSettings, load_settings
from sawchain.core import Sawchain
from sawchain.models.resource import (
    ConfigMap,
    KubeObject,
    ResourceKey,
    Scheme,
    Secret,
    Unstructured,
    default_scheme,
)
from sawchain.repositories.kubectl_store import KubectlStore
from sawchain.repositories.memory_store import InMemoryStore
from sawchain.repositories.store import (
    AlreadyExistsError,
    ConflictError,
    NotFoundError,
    ResourceStore,
    StoreCancelledError,
    StoreError,
    StoreUnavailableError,
)
from sawchain.services.arguments import bindings, interval, objects, template, timeout
from sawchain.services.diagnostics import (
    CheckMismatchError,
    ConsistencyTimeoutError,
    DiagnosticsReporter,
    FileWriteError,
    InvalidArgumentsError,
    InvalidTemplateError,
    SawchainError,
    StateCopyError,
    StoreMutationError,
    StoreReadError,
)
from sawchain.services.matchers import ResourceMatcher

__all__ = [
    "AlreadyExistsError",
    "CheckMismatchError",
    "ConfigMap",
    "ConflictError",
    "ConsistencyTimeoutError",
    "DiagnosticsReporter",
    "FileWriteError",
    "InMemoryStore",
    "InvalidArgumentsError",
    "InvalidTemplateError",
    "KubeObject",
    "KubectlStore",
    "NotFoundError",
    "ResourceMatcher",
    "ResourceKey",
    "ResourceStore",
    "Sawchain",
    "SawchainError",
    "SawchainSettings",
    "Scheme",
    "Secret",
    "StateCopyError",
    "StoreCancelledError",
    "StoreError",
    "StoreMutationError",
    "StoreReadError",
    "StoreUnavailableError",
    "Unstructured",
    "bindings",
    "default_scheme",
    "interval",
    "load_settings",
    "objects",
    "template",
    "timeout",
]
