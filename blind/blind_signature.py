"""
Blind signatures over secp256k1

The signer commits to a nonce k and publishes R = k*G. The requester blinds a
message digest m with two random factors (a, b):

    F  = a*R + b*G,   r = F.x mod n
    m' = a^-1 * r * m mod n

The signer returns s' = d*m' + k and the requester unblinds it into
s = a*s' + b. The pair (s, F) verifies against the signer key Q with

    s*G == F + (r*m)*Q

The signer never sees m or F, so it cannot link the signature it produced to
the commitment that is later presented with the vote.
"""

import logging
import secrets
from dataclasses import dataclass
from typing import Tuple, Union

from coincurve import PublicKey

from utils.errors import CryptoError, FormatError, ValidationError
from utils.utils import strip0x

logger = logging.getLogger(__name__)

# secp256k1 group order
SECP256K1_N = int("FFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141", 16)

SCALAR_SIZE = 32
COMPRESSED_POINT_SIZE = 33
SIGNATURE_SIZE = SCALAR_SIZE + COMPRESSED_POINT_SIZE

Point = PublicKey


@dataclass
class UserSecretData:
    """Blinding factors kept by the requester; never sent over the wire"""
    a: int
    b: int
    r_point: Point
    consumed: bool = False

    def __repr__(self) -> str:
        return f"UserSecretData(r_point={self.r_point.format().hex()[:16]}..., consumed={self.consumed})"


@dataclass
class UnblindedSignature:
    s: int
    f: Point

    def to_hex(self) -> str:
        return signature_to_hex(self)


@dataclass
class BlindedMessage:
    hex_blinded: str
    user_secret_data: UserSecretData


# ============================================================================
# CURVE HELPERS
# ============================================================================


def _rand_scalar() -> int:
    # uniform in [1, n-1]
    return secrets.randbelow(SECP256K1_N - 1) + 1


def _scalar_bytes(k: int) -> bytes:
    return (k % SECP256K1_N).to_bytes(SCALAR_SIZE, "big")


def _base_mul(k: int) -> Point:
    return PublicKey.from_valid_secret(_scalar_bytes(k))


def _point_mul(point: Point, k: int) -> Point:
    return point.multiply(_scalar_bytes(k))


def _point_add(p: Point, q: Point) -> Point:
    try:
        return PublicKey.combine_keys([p, q])
    except ValueError as e:
        # sum is the point at infinity
        raise CryptoError(f"Point addition failed: {e}")


def _point_x(point: Point) -> int:
    return point.point()[0]


def _message_to_int(hex_message: Union[str, int]) -> int:
    if isinstance(hex_message, int):
        return hex_message % SECP256K1_N
    try:
        return int(strip0x(hex_message), 16) % SECP256K1_N
    except (ValueError, TypeError):
        raise ValidationError(f"Invalid hex message: {hex_message!r}")


def decode_point(hex_point: str) -> Point:
    """Decodes a hex encoded point (compressed, uncompressed or raw x||y)"""
    try:
        raw = bytes.fromhex(strip0x(hex_point))
    except (ValueError, TypeError, AttributeError):
        raise FormatError(f"Invalid point encoding: {hex_point!r}")

    if len(raw) == 64:
        raw = b"\x04" + raw

    try:
        return PublicKey(raw)
    except (ValueError, TypeError) as e:
        raise FormatError(f"Point is not on secp256k1: {e}")


def encode_point(point: Point) -> str:
    return point.format(compressed=True).hex()


# ============================================================================
# REQUESTER SIDE
# ============================================================================


def blind(hex_message: str, signer_r: Point) -> BlindedMessage:
    """Blinds the given hex digest using the signer's R point

    Returns the blinded message as 32 zero-padded bytes in hex together with
    the secret data required to unblind the signature later on.
    """
    m = _message_to_int(hex_message)

    while True:
        a = _rand_scalar()
        b = _rand_scalar()
        f_point = _point_add(_point_mul(signer_r, a), _base_mul(b))
        r = _point_x(f_point) % SECP256K1_N
        if r != 0:
            break

    a_inv = pow(a, -1, SECP256K1_N)
    m_blinded = (a_inv * r * m) % SECP256K1_N

    return BlindedMessage(
        hex_blinded=m_blinded.to_bytes(SCALAR_SIZE, "big").hex(),
        user_secret_data=UserSecretData(a=a, b=b, r_point=f_point)
    )


def unblind(hex_blinded_signature: str, user_secret_data: UserSecretData) -> str:
    """Removes the blinding from a signature and returns it hex encoded"""
    if user_secret_data.consumed:
        raise CryptoError("The blinding secret has already been used")

    try:
        s_blind = int(strip0x(hex_blinded_signature), 16)
    except (ValueError, TypeError, AttributeError):
        raise FormatError("Invalid blinded signature encoding")

    if not 0 < s_blind < SECP256K1_N:
        raise CryptoError("Blinded signature out of range")

    s = (user_secret_data.a * s_blind + user_secret_data.b) % SECP256K1_N
    user_secret_data.consumed = True

    return signature_to_hex(UnblindedSignature(s=s, f=user_secret_data.r_point))


def verify(hex_message: str, hex_signature: str, public_key: Point) -> bool:
    """Checks an unblinded signature against the original message"""
    m = _message_to_int(hex_message)
    signature = signature_from_hex(hex_signature)

    if signature.s == 0:
        return False

    r = _point_x(signature.f) % SECP256K1_N
    left = _base_mul(signature.s)

    rm = (r * m) % SECP256K1_N
    try:
        right = signature.f if rm == 0 else _point_add(
            signature.f, _point_mul(public_key, rm))
    except CryptoError:
        return False

    return left.format() == right.format()


def signature_to_hex(signature: UnblindedSignature) -> str:
    return signature.s.to_bytes(SCALAR_SIZE, "big").hex() + encode_point(signature.f)


def signature_from_hex(hex_signature: str) -> UnblindedSignature:
    try:
        raw = bytes.fromhex(strip0x(hex_signature))
    except (ValueError, TypeError, AttributeError):
        raise FormatError("Invalid signature encoding")
    if len(raw) != SIGNATURE_SIZE:
        raise FormatError(
            f"Signature must be {SIGNATURE_SIZE} bytes, got {len(raw)}")

    s = int.from_bytes(raw[:SCALAR_SIZE], "big")
    try:
        f_point = PublicKey(raw[SCALAR_SIZE:])
    except ValueError as e:
        raise FormatError(f"Signature point is not on secp256k1: {e}")
    return UnblindedSignature(s=s, f=f_point)


# ============================================================================
# SIGNER SIDE
# ============================================================================


def new_request_parameters() -> Tuple[int, Point]:
    """Fresh signer nonce k and its public point R = k*G"""
    k = _rand_scalar()
    return k, _base_mul(k)


def blind_sign(secret_key: int, hex_blinded: str, k: int) -> str:
    """Signs a blinded message: s' = d*m' + k mod n

    The nonce k must be used for a single signature only; reusing it across
    two requests leaks the secret key.
    """
    m_blinded = _message_to_int(hex_blinded)
    if m_blinded == 0:
        raise CryptoError("Refusing to sign a zero message")
    s_blind = (secret_key * m_blinded + k) % SECP256K1_N
    return s_blind.to_bytes(SCALAR_SIZE, "big").hex()


def public_key_from_secret(secret_key: int) -> Point:
    return _base_mul(secret_key)
