import pytest

from _helper import build_world


@pytest.fixture
def world():
    return build_world()
