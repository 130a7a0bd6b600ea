"""Shared test fixtures for the deep research test suite."""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path

import pytest

from deepresearch.agent.state import RunState
from deepresearch.utils.config import Config
from tests.helpers import make_config, make_state, word_count


@pytest.fixture
def token_counter() -> Callable[[str], int]:
    return word_count


@pytest.fixture
def state() -> RunState:
    return make_state()


@pytest.fixture
def config(tmp_path: Path) -> Config:
    return make_config(tmp_path)
