"""Utilities for the vote credential system."""

from .utils import (
    setup_logging,
    strip0x,
    hex_to_bytes,
    normalize_process_id,
    bytes_le_to_int,
    truncate,
    PerformanceMonitor,
    validate_environment,
    format_duration,
)
from .wallet import EphemeralWallet, keccak256, to_checksum_address

__all__ = [
    'setup_logging',
    'strip0x',
    'hex_to_bytes',
    'normalize_process_id',
    'bytes_le_to_int',
    'truncate',
    'PerformanceMonitor',
    'validate_environment',
    'format_duration',
    'EphemeralWallet',
    'keccak256',
    'to_checksum_address',
]
