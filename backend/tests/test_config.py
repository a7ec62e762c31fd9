"""Settings validation."""

import pytest
from pydantic import ValidationError

from agrimarket.app.config import DEFAULT_JWT_SECRET, Settings


class TestSettings:
    def test_warn_alias(self):
        assert Settings(log_level="warn").log_level == "WARNING"

    def test_unknown_log_level(self):
        with pytest.raises(ValidationError):
            Settings(log_level="chatty")

    @pytest.mark.parametrize("rounds", [3, 32])
    def test_bcrypt_rounds_bounds(self, rounds):
        with pytest.raises(ValidationError):
            Settings(bcrypt_rounds=rounds)

    def test_production_requires_real_secret(self):
        with pytest.raises(ValidationError):
            Settings(environment="production", jwt_secret_key=DEFAULT_JWT_SECRET)
        assert Settings(environment="Production", jwt_secret_key="s3cret").is_production

    def test_cors_origins_list(self):
        assert Settings(cors_origins="https://a.ke, https://b.ke,").cors_origins_list == [
            "https://a.ke",
            "https://b.ke",
        ]
        assert Settings(cors_origins=" ").cors_origins_list == ["*"]
