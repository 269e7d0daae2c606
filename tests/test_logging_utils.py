"""Tests for target lifecycle logging."""
from __future__ import annotations

import logging

from swarm_vault import logging_utils
from swarm_vault.config import LoggingSettings
from swarm_vault.logging_utils import log_target_event, mask_address, setup_logging_from_settings

from engine_fakes import WALLET_1


class TestLogTargetEvent:

    def test_submitted_line(self, caplog):
        with caplog.at_level(logging.INFO, logger="swarm_vault.logging_utils"):
            log_target_event("submitted", "txn_1", "m1", wallet_address=WALLET_1, handle="0xop")
        record = caplog.records[-1]
        assert record.levelno == logging.INFO
        assert record.getMessage() == f"target event=submitted transaction=txn_1 member=m1 wallet={WALLET_1} handle=0xop"

    def test_failure_logged_as_warning(self, caplog):
        with caplog.at_level(logging.INFO, logger="swarm_vault.logging_utils"):
            log_target_event("failed", "txn_1", "m1", error="no balance to transfer")
        record = caplog.records[-1]
        assert record.levelno == logging.WARNING
        assert "error='no balance to transfer'" in record.getMessage()

    def test_masking(self, monkeypatch):
        assert mask_address(WALLET_1) == WALLET_1
        monkeypatch.setattr(logging_utils, "_mask_addresses", True)
        assert mask_address(WALLET_1) == "0x1111...1111"
        assert mask_address(None) == ""


class TestSetupLogging:

    def test_from_settings(self, monkeypatch):
        package_logger = logging.getLogger("swarm_vault")
        monkeypatch.setattr(logging_utils, "_mask_addresses", False)
        monkeypatch.setattr(package_logger, "level", package_logger.level)

        setup_logging_from_settings(LoggingSettings(level="debug", mask_addresses=True))

        assert package_logger.level == logging.DEBUG
        assert logging.getLogger("httpx").level == logging.WARNING
        assert mask_address(WALLET_1) == "0x1111...1111"
