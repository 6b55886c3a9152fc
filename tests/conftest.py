"""pytest configuration for DVR client tests."""

import pytest

from dvrclient.db import SettingsStore, init_db, set_db_path


# Configure asyncio mode for pytest-asyncio
def pytest_configure(config):
    config.addinivalue_line(
        "markers", "asyncio: mark test as async"
    )


@pytest.fixture(autouse=True)
def _temp_db(tmp_path):
    """Use a fresh temp database for each test."""
    set_db_path(tmp_path / "test.db")
    init_db()
    yield


@pytest.fixture
def store():
    return SettingsStore()


class Recorder:
    """Collects emitted events as ``(name, args)`` tuples."""

    def __init__(self) -> None:
        self.events: list[tuple] = []

    def __call__(self, name: str, *args) -> None:
        self.events.append((name, *args))

    def listen(self, emitter, *names: str) -> "Recorder":
        for name in names:
            emitter.on(name, lambda *args, _n=name: self(_n, *args))
        return self

    def names(self) -> list[str]:
        return [e[0] for e in self.events]

    def of(self, name: str) -> list[tuple]:
        return [e[1:] for e in self.events if e[0] == name]

    def clear(self) -> None:
        self.events.clear()


@pytest.fixture
def recorder():
    return Recorder()
