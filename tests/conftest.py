import pytest

from proctor.engine import ProctorEngine


class RecordingSink:
    def __init__(self) -> None:
        self.items = []

    def __call__(self, violation) -> None:
        self.items.append(violation)

    def types(self):
        return [v.type for v in self.items]


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def engine(sink) -> ProctorEngine:
    instance = ProctorEngine()
    instance.set_sink(sink)
    return instance
