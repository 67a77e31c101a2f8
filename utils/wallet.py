"""
Ephemeral secp256k1 wallet used as the anonymous voter identity
"""

import secrets
from dataclasses import dataclass, field

from Crypto.Hash import keccak
from coincurve import PrivateKey

from .utils import strip0x, hex_to_bytes


def keccak256(data: bytes) -> bytes:
    k = keccak.new(digest_bits=256)
    k.update(data)
    return k.digest()


def to_checksum_address(address: str) -> str:
    """EIP-55 mixed case encoding of a 20 byte address"""
    address = strip0x(address).lower()
    digest = keccak256(address.encode("ascii")).hex()
    return "0x" + "".join(
        c.upper() if c.isalpha() and int(digest[i], 16) >= 8 else c
        for i, c in enumerate(address)
    )


@dataclass
class EphemeralWallet:
    """Throwaway key pair whose address is bound into the blind credential"""
    private_key: PrivateKey = field(
        default_factory=lambda: PrivateKey(secrets.token_bytes(32)))

    @classmethod
    def from_hex(cls, hex_key: str) -> 'EphemeralWallet':
        return cls(private_key=PrivateKey(hex_to_bytes(hex_key)))

    @property
    def public_key(self) -> bytes:
        return self.private_key.public_key.format(compressed=False)

    @property
    def address(self) -> str:
        return to_checksum_address(keccak256(self.public_key[1:])[-20:].hex())
