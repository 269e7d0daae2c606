"""ERC-4337 helpers for the execution driver."""

from .bundler_client import BundlerClient, BundlerConfig
from .paymaster_client import PaymasterClient, PaymasterConfig, SponsoredUserOperation
from .service import (
    BundlerService,
    ERC4337Bundler,
    OperationState,
    OperationStatus,
    PreparedOperation,
)
from .user_operation import DUMMY_SIGNATURE, UserOperation, zero_hex

__all__ = [
    "UserOperation",
    "DUMMY_SIGNATURE",
    "zero_hex",
    "BundlerClient",
    "BundlerConfig",
    "PaymasterClient",
    "PaymasterConfig",
    "SponsoredUserOperation",
    "BundlerService",
    "ERC4337Bundler",
    "OperationState",
    "OperationStatus",
    "PreparedOperation",
]
