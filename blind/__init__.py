"""
Blind signature primitives over secp256k1
"""

from .blind_signature import (
    Point,
    UserSecretData,
    UnblindedSignature,
    BlindedMessage,
    SECP256K1_N,
    decode_point,
    encode_point,
    blind,
    unblind,
    verify,
    signature_to_hex,
    signature_from_hex,
    new_request_parameters,
    blind_sign,
    public_key_from_secret,
)

__all__ = [
    'Point',
    'UserSecretData',
    'UnblindedSignature',
    'BlindedMessage',
    'SECP256K1_N',
    'decode_point',
    'encode_point',
    'blind',
    'unblind',
    'verify',
    'signature_to_hex',
    'signature_from_hex',
    'new_request_parameters',
    'blind_sign',
    'public_key_from_secret',
]
