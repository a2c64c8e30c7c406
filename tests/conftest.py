"""Shared fixtures for session tests."""

import pytest

from databackup.config import SessionConfig
from databackup.session import ItemCatalog, SessionLogPersister, WorkflowController

from .fakes import FakeGateway


@pytest.fixture
def persister(tmp_path):
    return SessionLogPersister(tmp_path / "logs")


@pytest.fixture
def make_controller(persister):
    def factory(source, gateway=None, config=None, selection_store=None, log=None):
        return WorkflowController(
            gateway=gateway or FakeGateway(),
            catalog=ItemCatalog(source),
            persister=log or persister,
            selection_store=selection_store,
            config=config or SessionConfig(),
        )

    return factory
