"""
Credential Service Provider client: authentication, indexer and blind
credential issuance
"""

from .transport import CspTransport, HttpCsp
from .authentication import (
    CspAuthenticationType,
    ElectionAuthConfig,
    get_authentication_info,
    authenticate,
)
from .indexer import UserProcess, get_user_processes
from .signatures import (
    CAProof,
    ProofCaSignatureType,
    encode_ca_bundle,
    get_blinded_payload,
    get_signature,
    get_proof_from_blind_signature,
)
from .sms_authenticator import (
    AnonymousAuthFlow,
    CspSmsAuthenticatorStep,
    FlowState,
    ProcessStepResult,
    AuthTokenStepResult,
    TokenRStepResult,
    ProofStepResult,
)

__all__ = [
    'CspTransport',
    'HttpCsp',
    'CspAuthenticationType',
    'ElectionAuthConfig',
    'get_authentication_info',
    'authenticate',
    'UserProcess',
    'get_user_processes',
    'CAProof',
    'ProofCaSignatureType',
    'encode_ca_bundle',
    'get_blinded_payload',
    'get_signature',
    'get_proof_from_blind_signature',
    'AnonymousAuthFlow',
    'CspSmsAuthenticatorStep',
    'FlowState',
    'ProcessStepResult',
    'AuthTokenStepResult',
    'TokenRStepResult',
    'ProofStepResult',
]
