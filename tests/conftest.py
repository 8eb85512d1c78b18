"""Shared test fixtures for secretbus tests."""

import pathlib

import pytest

from secretbus.service import SecretService
from tests.fakes import FakeSecretService, FakeTransport

REPO_ROOT = pathlib.Path(__file__).resolve().parents[1]


@pytest.fixture
def repo_root() -> pathlib.Path:
    return REPO_ROOT


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def fake() -> FakeSecretService:
    return FakeSecretService()


@pytest.fixture
def service(fake: FakeSecretService) -> SecretService:
    return SecretService(fake)
