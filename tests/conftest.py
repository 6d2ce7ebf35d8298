"""
Pytest configuration and shared fixtures for GPT quota proxy tests.

Environment defaults are set here, before any application module is
imported, so that settings validation at server import succeeds without
external services.
"""

import os
import sys

import pytest

# Environment setup before any imports
os.environ["DEV_MODE"] = "false"
os.environ["ENVIRONMENT"] = "development"
os.environ["LOG_LEVEL"] = "WARNING"
# Set a mock API key to satisfy config validation (tests mock actual calls)
os.environ["OPENAI_API_KEY"] = "sk-test-mock-key-for-unit-tests-only"
for _name in ("OPENAI_BASE_URL", "REDIS_URL", "SUPABASE_URL", "SUPABASE_SERVICE_ROLE_KEY", "SENTRY_DSN", "PRO_USER_IDS"):
    os.environ.pop(_name, None)

# Ensure project root is in path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))


@pytest.fixture(autouse=True)
def reset_settings_cache():
    """Drop cached settings so environment patches take effect."""
    from quota_proxy.config import get_settings

    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
