"""
Tests for Settings.
"""

import pytest
from pydantic import ValidationError

from shared.config import Settings


class TestSettings:
    def test_defaults(self):
        settings = Settings()

        assert settings.visibility_timeout == 30
        assert settings.max_receive_count == 3
        assert settings.batch_size == 10
        assert settings.high_value_threshold == 500
        assert settings.max_order_value == 10000

    def test_from_env(self):
        settings = Settings.from_env({
            "ORDER_PIPELINE_MAX_ORDER_VALUE": "25000",
            "ORDER_PIPELINE_INLINE_WORKFLOWS": "true",
            "UNRELATED": "x",
        })

        assert settings.max_order_value == 25000
        assert settings.inline_workflows is True

    def test_overrides_win(self):
        settings = Settings.from_env({"ORDER_PIPELINE_BATCH_SIZE": "5"}, batch_size=2)
        assert settings.batch_size == 2

    def test_invalid_value_rejected(self):
        with pytest.raises(ValidationError):
            Settings.from_env({"ORDER_PIPELINE_PAYMENT_SUCCESS_RATE": "1.5"})
