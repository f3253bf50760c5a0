"""
Pytest configuration for the test suite.

This file is automatically loaded by pytest and applies configuration
to all tests in the tests/ directory.
"""

import os
import sys

import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from config import Config


def pytest_configure(config):
    """Configure pytest with custom markers and settings."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )


@pytest.fixture
def small_config(tmp_path):
    """CPU config with tiny batches and a shallow search, models under tmp_path."""
    return Config(
        FORCE_CPU=True,
        BATCH_SIZE=4,
        MEMORY_SIZE=64,
        TARGET_UPDATE=5,
        EPSILON_DECAY_STEPS=20,
        LOOKAHEAD_DEPTH=1,
        DEMO_PHASE_STEPS=10,
        AUTOSAVE_EVERY=0,
        MODEL_DIR=str(tmp_path / 'models'),
        LOG_DIR=str(tmp_path / 'logs'),
    )
