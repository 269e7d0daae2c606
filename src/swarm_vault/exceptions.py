"""Exception hierarchy for the swarm vault engine.

Errors fall into four groups that map onto how the execution driver reacts:

- Template errors (``TemplateValidationError`` and subclasses) reject a whole
  dispatch before any record is written.
- Resolution errors (``ResolutionError`` and subclasses) fail a single member's
  target and never affect other members.
- Signing errors (``SigningError`` and subclasses) fail a single member's target.
- Submission errors (``SubmissionError`` and subclasses) fail a single member's
  target, either at submit time or when the operation lands reverted.

All exceptions have:
- error_code: Machine-readable error code (e.g., "TEMPLATE_INVALID")
- message: Human-readable error message
- details: Optional additional context dictionary
- to_dict(): Convert to a response payload
"""
from __future__ import annotations

from typing import Any, Optional


class SwarmVaultError(Exception):
    """Base exception for all swarm vault errors.

    Attributes:
        message: Human-readable error message
        error_code: Machine-readable error code
        details: Optional additional context
    """

    error_code: str = "SWARM_VAULT_ERROR"

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if error_code:
            self.error_code = error_code
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to a response payload."""
        result = {
            "error": self.error_code,
            "message": self.message,
        }
        if self.details:
            result["details"] = self.details
        return result


# =============================================================================
# Template Errors
# =============================================================================

class TemplateValidationError(SwarmVaultError):
    """The template is malformed; the whole dispatch is rejected."""

    error_code = "TEMPLATE_INVALID"

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        details = details or {}
        if field:
            details["field"] = field
        super().__init__(message, details=details)


class PlaceholderSyntaxError(TemplateValidationError):
    """Unknown placeholder name, wrong argument count or malformed argument."""

    error_code = "PLACEHOLDER_INVALID"

    def __init__(
        self,
        placeholder: str,
        reason: str,
        location: Optional[str] = None,
    ) -> None:
        where = f" at {location}" if location else ""
        super().__init__(
            f"Invalid placeholder {{{{{placeholder}}}}}{where}: {reason}",
            field=location,
            details={"placeholder": placeholder},
        )
        self.placeholder = placeholder
        self.location = location


# =============================================================================
# Per-member Resolution Errors
# =============================================================================

class ResolutionError(SwarmVaultError):
    """A template could not be resolved for one wallet."""

    error_code = "RESOLUTION_FAILED"


class ContextFetchError(ResolutionError):
    """Balance or block data could not be fetched for a wallet."""

    error_code = "CONTEXT_FETCH_FAILED"

    def __init__(self, wallet_address: str, reason: str) -> None:
        super().__init__(
            f"Failed to fetch wallet context for {wallet_address}: {reason}",
            details={"wallet_address": wallet_address},
        )


class MissingContextError(ResolutionError):
    """A placeholder referenced data absent from the wallet context."""

    error_code = "CONTEXT_MISSING"


class ZeroBalanceError(ResolutionError):
    """A balance-derived amount resolved to zero for this wallet."""

    error_code = "ZERO_BALANCE"

    def __init__(self, placeholders: list[str]) -> None:
        super().__init__(
            "no balance to transfer",
            details={"placeholders": placeholders},
        )


class EncodingError(ResolutionError):
    """Resolved arguments could not be encoded into call data."""

    error_code = "ENCODING_FAILED"


# =============================================================================
# Signing Errors
# =============================================================================

class SigningError(SwarmVaultError):
    """The delegated signer failed to produce a signature."""

    error_code = "SIGNING_FAILED"


class SignatureFormatError(SigningError):
    """The signer returned a signature that cannot be normalized."""

    error_code = "SIGNATURE_FORMAT_INVALID"


# =============================================================================
# Submission Errors
# =============================================================================

class SubmissionError(SwarmVaultError):
    """The bundler rejected an operation or it reverted on-chain."""

    error_code = "SUBMISSION_FAILED"


class BundlerError(SubmissionError):
    """The bundler RPC returned an error or an unexpected payload."""

    error_code = "BUNDLER_ERROR"

    def __init__(self, method: str, reason: Any) -> None:
        super().__init__(
            f"Bundler RPC error ({method}): {reason}",
            details={"method": method},
        )


class StageTimeoutError(SwarmVaultError):
    """A collaborator call did not finish within its time limit."""

    error_code = "STAGE_TIMEOUT"

    def __init__(self, stage: str, seconds: float) -> None:
        super().__init__(
            f"{stage} timed out after {seconds:g}s",
            details={"stage": stage, "timeout_seconds": seconds},
        )


class RPCError(SwarmVaultError):
    """A chain JSON-RPC call failed."""

    error_code = "RPC_ERROR"

    def __init__(self, method: str, reason: Any) -> None:
        super().__init__(
            f"RPC error ({method}): {reason}",
            details={"method": method},
        )


# =============================================================================
# Store Errors
# =============================================================================

class NotFoundError(SwarmVaultError):
    """Requested record not found."""

    error_code = "NOT_FOUND"

    def __init__(self, resource_type: str, resource_id: str) -> None:
        super().__init__(
            f"{resource_type} '{resource_id}' not found",
            details={"resource_type": resource_type, "resource_id": resource_id},
        )


class InvalidStatusTransitionError(SwarmVaultError):
    """A target status change would move it backwards."""

    error_code = "INVALID_STATUS_TRANSITION"

    def __init__(self, target_id: str, current: str, requested: str) -> None:
        super().__init__(
            f"Target '{target_id}' cannot move from {current} to {requested}",
            details={"target_id": target_id, "current": current, "requested": requested},
        )


class ConfigurationError(SwarmVaultError):
    """Engine configuration is missing or invalid."""

    error_code = "CONFIGURATION_ERROR"
