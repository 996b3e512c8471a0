"""Test helper utilities: fakes for the service layer and sample schemas."""

from tests.helpers.fakes import (
    CountingAuthenticator,
    FailingTransport,
    FakeSchemaSource,
    MemorySecretStore,
    ScriptedTransport,
    json_response,
    list_envelope,
)
from tests.helpers.schema_documents import (
    CONFERENCE_PATH,
    LOCK_PATH,
    TARGET,
    WORKER_VM_PATH,
    sample_documents,
    sample_roots,
)

__all__ = [
    "CONFERENCE_PATH",
    "CountingAuthenticator",
    "FailingTransport",
    "FakeSchemaSource",
    "LOCK_PATH",
    "MemorySecretStore",
    "ScriptedTransport",
    "TARGET",
    "WORKER_VM_PATH",
    "json_response",
    "list_envelope",
    "sample_documents",
    "sample_roots",
]
