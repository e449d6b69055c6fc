"""Tests for COGS fallback resolution."""

from __future__ import annotations

import pytest

from plconfig.domain.finance.cogs import resolve_cogs_cents
from plconfig.domain.finance.defaults import get_defaults


def _settings(**overrides):
    settings = get_defaults().cogs()
    for key, value in overrides.items():
        setattr(settings, key, value)
    return settings


def test_known_cogs_passes_through():
    """Test a known value, including 0, is never replaced."""
    settings = _settings(fallback_behavior="use_default", fallback_default_cogs_cents=500)

    assert resolve_cogs_cents(1234, 50.0, settings) == 1234
    assert resolve_cogs_cents(0, 50.0, settings) == 0


@pytest.mark.parametrize(
    "overrides,expected",
    [
        ({"fallback_behavior": "zero"}, 0),
        ({"fallback_behavior": "skip_pnl"}, None),
        ({"fallback_behavior": "use_default", "fallback_default_cogs_cents": 450}, 450),
        ({"fallback_behavior": "use_default"}, 0),
        ({"fallback_behavior": "percentage_of_price", "fallback_percent": 35}, 2100),
        ({"fallback_behavior": "percentage_of_price", "fallback_percent": 33.3}, 1998),
    ],
)
def test_unknown_cogs_uses_fallback(overrides, expected):
    """Test each fallback policy for a 60.00 order with unknown COGS."""
    assert resolve_cogs_cents(None, 60.0, _settings(**overrides)) == expected
