"""Shared fixtures for gamebudget tests."""

import os
import tempfile
from datetime import timedelta

import pytest

from gamebudget.budget import local_midnight
from gamebudget.db import GameTimeDB
from gamebudget.models import utcnow


@pytest.fixture
def db():
    """Create a temporary database for testing."""
    with tempfile.NamedTemporaryFile(suffix='.db', delete=False) as f:
        db_path = f.name

    try:
        db = GameTimeDB(db_path)
        yield db
    finally:
        os.unlink(db_path)


@pytest.fixture
def midnight():
    """Start of the current local day, as UTC."""
    return local_midnight(utcnow())


@pytest.fixture
def noon(midnight):
    """Midday of the current local day - a stable 'now' for budget tests."""
    return midnight + timedelta(hours=12)
