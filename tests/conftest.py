"""Shared fixtures for the engine tests."""
from __future__ import annotations

import pytest

from swarm_vault.config import ExecutionSettings, PollerSettings
from swarm_vault.driver import ExecutionDriver
from swarm_vault.models import Member
from swarm_vault.signing.local_signer import LocalThresholdSigner
from swarm_vault.store import InMemoryTransactionStore

from engine_fakes import TEST_PRIVATE_KEY, WALLET_1, WALLET_2, WALLET_3, FakeBundler


@pytest.fixture
def local_signer():
    return LocalThresholdSigner()


@pytest.fixture
def key_handle(local_signer):
    return local_signer.add_key(TEST_PRIVATE_KEY)


@pytest.fixture
def store():
    return InMemoryTransactionStore()


@pytest.fixture
def bundler():
    return FakeBundler()


@pytest.fixture
def members(key_handle):
    return [
        Member("member-1", WALLET_1, key_handle),
        Member("member-2", WALLET_2, key_handle),
        Member("member-3", WALLET_3, key_handle),
    ]


@pytest.fixture
def execution_settings():
    return ExecutionSettings(
        max_concurrency=4,
        context_timeout_seconds=1.0,
        signer_timeout_seconds=1.0,
        bundler_timeout_seconds=1.0,
    )


@pytest.fixture
def poller_settings():
    return PollerSettings(interval_seconds=0.01, status_timeout_seconds=1.0)


@pytest.fixture
def make_driver(store, local_signer, bundler, execution_settings):
    def _make(context_provider, settings=None, signer=None, default_key_handle=None):
        return ExecutionDriver(
            store,
            context_provider,
            signer or local_signer,
            bundler,
            settings=settings or execution_settings,
            default_key_handle=default_key_handle,
        )
    return _make
