"""
Tests for configuration, logging setup and canonical JSON.

Test plan:
- NetworkConfig: mainnet/testnet factories, for_network selection
- PaymentSettings: defaults, invalid values rejected
- setup_logging: JSON and console renderers both configure structlog
- canonical_json: sorted keys, no whitespace, Decimal as plain string,
  floats never needed
"""

from decimal import Decimal

import pytest
import structlog

from nexus_pay.canonical_json import canonical_json, content_digest
from nexus_pay.config import (
    MAINNET_PASSPHRASE,
    TESTNET_PASSPHRASE,
    NetworkConfig,
    PaymentSettings,
)
from nexus_pay.log import setup_logging


class TestNetworkConfig:
    def test_mainnet(self) -> None:
        config = NetworkConfig.mainnet()
        assert not config.testnet
        assert config.name == "mainnet"
        assert config.network_passphrase == MAINNET_PASSPHRASE

    def test_testnet(self) -> None:
        config = NetworkConfig.for_network(True)
        assert config.name == "testnet"
        assert config.network_passphrase == TESTNET_PASSPHRASE
        assert "/testnet/" in config.price_feed_url

    def test_frozen(self) -> None:
        config = NetworkConfig.mainnet()
        with pytest.raises(AttributeError):
            config.testnet = True  # type: ignore[misc]


class TestPaymentSettings:
    def test_defaults(self) -> None:
        settings = PaymentSettings()
        assert settings.price_refresh_interval == 60.0
        assert settings.directory_cache_ttl == 3600.0
        assert settings.base_reserve == Decimal("0.5")

    def test_no_directory_ttl(self) -> None:
        assert PaymentSettings(directory_cache_ttl=None).directory_cache_ttl is None

    @pytest.mark.parametrize(
        "overrides",
        [
            {"price_refresh_interval": 0},
            {"directory_cache_ttl": -1.0},
            {"transaction_valid_for": 0},
        ],
    )
    def test_invalid(self, overrides: dict[str, float]) -> None:
        with pytest.raises(ValueError):
            PaymentSettings(**overrides)  # type: ignore[arg-type]


class TestLogging:
    @pytest.mark.parametrize("json_output", [True, False])
    def test_setup_logging(self, json_output: bool) -> None:
        try:
            setup_logging(json_output=json_output, log_level="debug")
            assert structlog.is_configured()
            structlog.get_logger("nexus_pay.test").info("logging_configured", json=json_output)
        finally:
            structlog.reset_defaults()


class TestCanonicalJson:
    def test_sorted_compact(self) -> None:
        assert canonical_json({"b": 1, "a": [1, 2]}) == '{"a":[1,2],"b":1}'

    def test_decimal_plain_string(self) -> None:
        assert canonical_json({"amount": Decimal("1E-7")}) == '{"amount":"0.0000001"}'

    def test_unsupported_type(self) -> None:
        with pytest.raises(TypeError, match="set"):
            canonical_json({"x": {1}})

    def test_digest_prefix(self) -> None:
        digest = content_digest({"a": 1})
        assert digest.startswith("sha256:")
        assert len(digest) == len("sha256:") + 64
        assert digest == content_digest({"a": 1})
