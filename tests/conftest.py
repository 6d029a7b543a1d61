import pytest

from fakes import make_playwright


@pytest.fixture
def fake_playwright():
    return make_playwright()
