"""
Pytest configuration for the CHIP-8 test suite.

    python -m pytest            # everything
    python -m pytest -m "not pygame"

pygame tests run against SDL's dummy video and audio drivers so no window
opens and no sound device is needed.  They are skipped when pygame is not
installed.
"""

import importlib.util
import os

import pytest

os.environ.setdefault("SDL_VIDEODRIVER", "dummy")
os.environ.setdefault("SDL_AUDIODRIVER", "dummy")
os.environ.setdefault("PYGAME_HIDE_SUPPORT_PROMPT", "1")


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers",
        "pygame: tests that drive pygame (dummy SDL drivers)")


def pytest_collection_modifyitems(config, items):
    if importlib.util.find_spec("pygame") is not None:
        return
    skip = pytest.mark.skip(reason="pygame not installed")
    for item in items:
        if "pygame" in item.keywords:
            item.add_marker(skip)
