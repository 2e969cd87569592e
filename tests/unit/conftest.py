import pytest

from justload import LoaderState


@pytest.fixture
def state() -> LoaderState:
    return LoaderState(debug=False)
