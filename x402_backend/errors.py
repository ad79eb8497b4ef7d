# x402_backend/errors.py
from typing import List, Optional


class ConfigError(ValueError):
    """Required settings are absent or malformed."""

    def __init__(self, message: str, missing: Optional[List[str]] = None):
        self.missing = list(missing or [])
        super().__init__(message)


class BootstrapError(RuntimeError):
    """Base class for everything that can fail the bootstrap pipeline."""


class DescriptorsNotFoundError(BootstrapError):
    pass


class DescriptorsIncompleteError(BootstrapError):
    """
    A descriptor source was found but lacks a required piece.
    `missing` is one of "contracts", "serviceRegistry", "paymentEscrow".
    """

    def __init__(self, missing: str, message: str):
        self.missing = missing
        super().__init__(message)


class ChainConnectionError(BootstrapError):
    pass


class ContractBindingError(BootstrapError):
    def __init__(self, role: str, message: str):
        self.role = role
        super().__init__(message)


class NotInitializedError(RuntimeError):
    """An accessor was used before a successful bootstrap()."""
