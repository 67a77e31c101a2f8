"""
Error taxonomy shared by the credential, CSP and witness modules
"""

from typing import Optional


class VoteCredentialError(Exception):
    """Base exception for credential and proof operations"""
    pass


class ValidationError(VoteCredentialError):
    """Malformed caller input (process id, user id, hex, field element)"""
    pass


class MissingParameterError(ValidationError):
    """A required parameter was not provided"""
    pass


class MissingTokenError(MissingParameterError):
    """An authentication token is required for this step"""
    pass


class NetworkError(VoteCredentialError):
    """Remote call failed; the message carries the upstream diagnostic"""
    pass


class ProtocolError(NetworkError):
    """Remote response lacks a required field"""
    pass


class AuthenticationError(VoteCredentialError):
    """CSP rejected an authentication step"""
    pass


class CryptoError(VoteCredentialError):
    """Curve arithmetic or signature verification failed"""
    pass


class FormatError(CryptoError, ValidationError):
    """Invalid point or signature encoding"""
    pass


class WitnessComputationError(VoteCredentialError):
    """The circuit module reported an internal fault"""

    def __init__(self, message: str, code: Optional[int] = None):
        super().__init__(message)
        self.code = code


class SerializationError(VoteCredentialError):
    """Malformed witness or proof binary"""
    pass


class ProverError(VoteCredentialError):
    """The external groth16 prover failed"""
    pass


class FlowStateError(VoteCredentialError):
    """The authentication flow was resumed out of order or after it ended"""
    pass


__all__ = [
    'VoteCredentialError',
    'ValidationError',
    'MissingParameterError',
    'MissingTokenError',
    'NetworkError',
    'ProtocolError',
    'AuthenticationError',
    'CryptoError',
    'FormatError',
    'WitnessComputationError',
    'SerializationError',
    'ProverError',
    'FlowStateError',
]
