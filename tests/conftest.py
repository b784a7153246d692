"""Global test configuration."""

import pytest
from samples import Recorder


@pytest.fixture
def recorder() -> Recorder:
    """Fresh event recorder."""
    return Recorder()
