import pytest

from application.messages import MessageChannel


class ManualSpawner:
    """Collects worker bodies so tests decide when (and whether) they run."""

    def __init__(self):
        self.pending = []

    def __call__(self, fn, name):
        self.pending.append((name, fn))

    def run_next(self):
        name, fn = self.pending.pop(0)
        fn()
        return name

    def run_all(self):
        while self.pending:
            self.run_next()


@pytest.fixture
def spawner():
    return ManualSpawner()


@pytest.fixture
def channel():
    return MessageChannel()
