"""
Blind credential issuance

The voter binds an ephemeral wallet address to the process id, blinds the
keccak256 digest of that bundle with the CSP-supplied R point and has the CSP
sign it. The unblinded signature is the CA proof attached to the vote.
"""

import logging
from dataclasses import dataclass
from enum import IntEnum
from typing import Any, Dict

from blind import blind_signature
from blind.blind_signature import UserSecretData
from utils.errors import (
    MissingTokenError,
    NetworkError,
    ProtocolError,
    ValidationError,
)
from utils.utils import hex_to_bytes, normalize_process_id, truncate
from utils.wallet import keccak256

from .authentication import CspAuthenticationType
from .transport import CspTransport

logger = logging.getLogger(__name__)

SIGNABLE_TYPES = (CspAuthenticationType.BLIND, CspAuthenticationType.ECDSA)


class ProofCaSignatureType(IntEnum):
    UNKNOWN = 0
    ECDSA = 1
    ECDSA_PIDSALTED = 2
    ECDSA_BLIND = 3
    ECDSA_BLIND_PIDSALTED = 4


@dataclass
class CAProof:
    type: ProofCaSignatureType
    voter_address: str
    signature: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type.name,
            "voterAddress": self.voter_address,
            "signature": self.signature,
        }


def _varint(value: int) -> bytes:
    out = bytearray()
    while True:
        byte = value & 0x7F
        value >>= 7
        if value:
            out.append(byte | 0x80)
        else:
            out.append(byte)
            return bytes(out)


def encode_ca_bundle(process_id: bytes, address: bytes) -> bytes:
    """Protobuf encoding of CAbundle {bytes processId = 1; bytes address = 2}"""
    out = bytearray()
    for field_number, value in ((1, process_id), (2, address)):
        if not value:
            continue
        out += _varint((field_number << 3) | 2)
        out += _varint(len(value))
        out += value
    return bytes(out)


def get_blinded_payload(election_id: str, hex_token_r: str, ephemeral_wallet
                        ) -> blind_signature.BlindedMessage:
    """Builds and blinds the commitment hash(processId || voter address)"""
    process_id = hex_to_bytes(normalize_process_id(election_id))
    token_r = blind_signature.decode_point(hex_token_r)

    bundle = encode_ca_bundle(process_id, hex_to_bytes(ephemeral_wallet.address))
    hashed_bundle = keccak256(bundle).hex()

    return blind_signature.blind(hashed_bundle, token_r)


def get_signature(sign_type, payload: str, blind_token: str, process_id: str,
                  csp: CspTransport) -> str:
    """Asks the CSP to sign the (blinded) payload and returns the hex signature"""
    process_id = normalize_process_id(process_id)
    if csp is None:
        raise ValidationError("Invalid CSP object")
    if not blind_token:
        raise MissingTokenError("Invalid authentication token")
    try:
        sign_type = CspAuthenticationType(sign_type)
    except ValueError:
        raise ValidationError(f"Invalid signature type: {sign_type!r}")
    if sign_type not in SIGNABLE_TYPES:
        raise ValidationError(f"Invalid signature type: {sign_type.value}")

    try:
        response = csp.send_request(
            f"/auth/elections/{process_id}/{sign_type.value}/sign",
            {"payload": payload, "token": blind_token},
            {})
    except NetworkError as e:
        raise NetworkError(f"Error getting the blind signature: {e}") from e

    if not response.get("signature"):
        raise ProtocolError("Error getting the blind signature: Invalid csp response")

    logger.info(f"Received {sign_type.value} signature for process {truncate(process_id)}")
    return response["signature"]


def get_proof_from_blind_signature(hex_blind_signature: str,
                                   user_secret_data: UserSecretData,
                                   wallet) -> CAProof:
    unblinded = blind_signature.unblind(hex_blind_signature, user_secret_data)
    return CAProof(
        type=ProofCaSignatureType.ECDSA_BLIND_PIDSALTED,
        signature=unblinded,
        voter_address=wallet.address,
    )
