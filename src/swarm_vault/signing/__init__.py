"""Delegated signing: threshold-signer port, account adapter and implementations."""

from .account import DelegatedSigningAccount, ThresholdSigner, signable_hash
from .lit_signer import LitThresholdSigner
from .local_signer import LocalThresholdSigner
from .signature import RecoverableSignature, normalize_signature

__all__ = [
    "ThresholdSigner",
    "DelegatedSigningAccount",
    "signable_hash",
    "RecoverableSignature",
    "normalize_signature",
    "LitThresholdSigner",
    "LocalThresholdSigner",
]
