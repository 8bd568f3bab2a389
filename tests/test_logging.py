"""
Logging setup follows the LOG_LEVEL setting.
"""
import logging

import pytest

from remedhub.config import settings
from remedhub.logging import setup_logging


@pytest.fixture
def root_level():
    root = logging.getLogger()
    previous = root.level
    yield root
    root.setLevel(previous)


@pytest.mark.parametrize("configured,expected", [("warning", logging.WARNING), ("DEBUG", logging.DEBUG), ("bogus", logging.INFO)])
def test_level_comes_from_settings(monkeypatch, root_level, configured, expected):
    monkeypatch.setattr(settings, "log_level", configured)

    setup_logging()

    assert root_level.level == expected
