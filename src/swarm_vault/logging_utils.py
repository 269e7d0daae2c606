"""
Logging helpers for the execution engine.

Features:
- Root logger setup (plain or JSON line format)
- Address masking for logs shared outside the operator team
- Target lifecycle log lines with a stable field layout
"""
from __future__ import annotations

import logging
from typing import Optional

from .config import LoggingSettings

logger = logging.getLogger(__name__)

_mask_addresses = False


def setup_logging(
    level: str = "INFO",
    format_string: Optional[str] = None,
    json_format: bool = False,
    mask_addresses: bool = False,
) -> None:
    """
    Set up logging configuration.

    Args:
        level: Log level
        format_string: Custom format string
        json_format: Use JSON formatting
        mask_addresses: Shorten wallet addresses in lifecycle logs
    """
    global _mask_addresses
    _mask_addresses = mask_addresses

    if format_string is None:
        if json_format:
            format_string = '{"timestamp": "%(asctime)s", "level": "%(levelname)s", "name": "%(name)s", "message": "%(message)s"}'
        else:
            format_string = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    logging.basicConfig(
        level=getattr(logging, level.upper()),
        format=format_string,
    )

    logging.getLogger("swarm_vault").setLevel(getattr(logging, level.upper()))
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


def setup_logging_from_settings(settings: LoggingSettings) -> None:
    setup_logging(
        level=settings.level,
        json_format=settings.json_format,
        mask_addresses=settings.mask_addresses,
    )


def mask_address(address: Optional[str]) -> str:
    """Mask middle portion of address when masking is enabled."""
    if not address:
        return ""
    if not _mask_addresses or len(address) < 10:
        return address
    return f"{address[:6]}...{address[-4:]}"


def log_target_event(
    event: str,
    transaction_id: str,
    member_id: str,
    wallet_address: Optional[str] = None,
    handle: Optional[str] = None,
    error: Optional[str] = None,
) -> None:
    """Write one target lifecycle line (submitted, confirmed, failed, ...)."""
    parts = [
        f"event={event}",
        f"transaction={transaction_id}",
        f"member={member_id}",
    ]
    if wallet_address:
        parts.append(f"wallet={mask_address(wallet_address)}")
    if handle:
        parts.append(f"handle={handle}")
    if error:
        parts.append(f"error={error!r}")
        logger.warning("target %s", " ".join(parts))
    else:
        logger.info("target %s", " ".join(parts))
