"""
Challenge-response authentication against a CSP

Each step is a single request/response pair. Nothing here retries: a step
consumes one of the attempts the CSP grants per (user, process), so the
caller decides whether starting over is worth it.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from utils.errors import (
    AuthenticationError,
    MissingTokenError,
    NetworkError,
    ValidationError,
)
from utils.utils import normalize_process_id, strip0x, truncate

from .transport import CspTransport

logger = logging.getLogger(__name__)


class CspAuthenticationType(str, Enum):
    BLIND = "blind"
    ECDSA = "ecdsa"
    SHAREDKEY = "sharedkey"

    @classmethod
    def parse(cls, value) -> 'CspAuthenticationType':
        try:
            return cls(value)
        except ValueError:
            raise ValidationError(f"Invalid auth type: {value!r}")


@dataclass
class ElectionAuthConfig:
    """Authentication steps the CSP requires for a process"""
    auth_type: Optional[str]
    auth_steps: List[Dict[str, Any]] = field(default_factory=list)
    title: Optional[str] = None
    raw: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_response(cls, response: Dict[str, Any]) -> 'ElectionAuthConfig':
        return cls(
            auth_type=response.get("authType"),
            auth_steps=list(response.get("authSteps") or []),
            title=response.get("title"),
            raw=response,
        )


def _check_transport(csp: CspTransport):
    if csp is None:
        raise ValidationError("Invalid CSP object")


def _endpoint(auth_type: CspAuthenticationType, process_id: str, step: int) -> str:
    base = f"/auth/elections/{process_id}"
    if auth_type is CspAuthenticationType.SHAREDKEY:
        return f"{base}/sharedkey/{step}"
    return f"{base}/{auth_type.value}/auth/{step}"


def get_authentication_info(process_id: str, csp: CspTransport) -> ElectionAuthConfig:
    """Asks the CSP for the authentication steps of a process"""
    process_id = normalize_process_id(process_id)
    _check_transport(csp)

    try:
        response = csp.send_request(f"/auth/elections/{process_id}/info", {}, {})
    except NetworkError as e:
        raise NetworkError(f"The process info could not be retrieved: {e}") from e

    return ElectionAuthConfig.from_response(response)


def authenticate(auth_type, auth_data: List[str], auth_token: Optional[str],
                 step: int, process_id: str, csp: CspTransport) -> Dict[str, Any]:
    """Submits the data of one authentication step

    Step 0 sends the identity material and gets back an `authToken` plus a
    `response` hint (e.g. the last digits of a phone number). Later steps
    send the challenge answer along with the previous `authToken`; the final
    one returns the `token` used to request the blind signature.

    Raises:
        ValidationError: malformed process id, step or auth type
        MissingTokenError: step > 0 without an auth token
        AuthenticationError: the CSP rejected the step
    """
    process_id = normalize_process_id(process_id)
    _check_transport(csp)
    auth_type = CspAuthenticationType.parse(auth_type)

    if not isinstance(step, int) or step < 0:
        raise ValidationError(f"Invalid authentication step: {step!r}")
    if step > 0 and not auth_token:
        raise MissingTokenError("Invalid authentication token")

    body: Dict[str, Any] = {"authData": [strip0x(d) for d in auth_data]}
    if auth_token:
        body["authToken"] = auth_token

    endpoint = _endpoint(auth_type, process_id, step)
    logger.debug(f"CSP auth step {step} ({auth_type.value}) for process {truncate(process_id)}")

    try:
        response = csp.send_request(endpoint, body, {})
    except NetworkError as e:
        raise AuthenticationError(f"Authentication error: {e}") from e

    if response.get("error"):
        raise AuthenticationError(f"Authentication error: {response['error']}")

    return response
