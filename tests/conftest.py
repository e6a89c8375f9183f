"""Shared pytest configuration and fixtures"""

import sys
from datetime import timedelta
from pathlib import Path

import pytest

# Add project root to path for chart_search imports
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

# Add tests directory to path for factories import
tests_dir = Path(__file__).parent
sys.path.insert(0, str(tests_dir))

from factories import FIXED_NOW


@pytest.fixture
def fixed_now():
    """Reference time for deterministic recency math"""
    return FIXED_NOW


@pytest.fixture
def days_ago(fixed_now):
    """days_ago(n) → ISO timestamp n days before fixed_now"""
    def _days_ago(days: float) -> str:
        return (fixed_now - timedelta(days=days)).isoformat()
    return _days_ago
