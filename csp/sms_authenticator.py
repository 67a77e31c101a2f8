"""
Anonymous SMS authentication flow against a blind-signature CSP

    GET_PROCESS -> GET_AUTH_TOKEN -> GET_TOKENR -> GET_PROOF -> finished

`AnonymousAuthFlow.resume()` runs exactly one step and returns its result.
The step after GET_AUTH_TOKEN needs the OTP the user received, so the flow
cannot get past it unless the caller supplies one. The flow only moves
forward: any failure terminates it, and a new attempt means a new flow
starting again at GET_PROCESS (which costs a new CSP attempt).
"""

import logging
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional, Union

from utils.errors import (
    AuthenticationError,
    FlowStateError,
    MissingParameterError,
    ValidationError,
)
from utils.utils import strip0x, truncate

from . import authentication, indexer, signatures
from .signatures import CAProof
from .transport import CspTransport

logger = logging.getLogger(__name__)


class CspSmsAuthenticatorStep(str, Enum):
    GET_PROCESS = "gotProcess"
    GET_AUTH_TOKEN = "gotAuthToken"
    GET_TOKENR = "gotTokenr"
    GET_PROOF = "gotProof"


class FlowState(Enum):
    PENDING = "pending"
    RUNNING = "running"
    FINISHED = "finished"
    FAILED = "failed"


@dataclass
class ProcessStepResult:
    election_id: str
    remaining_attempts: int
    consumed: bool
    key: CspSmsAuthenticatorStep = CspSmsAuthenticatorStep.GET_PROCESS


@dataclass
class AuthTokenStepResult:
    auth_token: str
    phone_suffix: str
    key: CspSmsAuthenticatorStep = CspSmsAuthenticatorStep.GET_AUTH_TOKEN


@dataclass
class TokenRStepResult:
    token: str
    key: CspSmsAuthenticatorStep = CspSmsAuthenticatorStep.GET_TOKENR


@dataclass
class ProofStepResult:
    proof: CAProof
    key: CspSmsAuthenticatorStep = CspSmsAuthenticatorStep.GET_PROOF


StepResult = Union[ProcessStepResult, AuthTokenStepResult,
                   TokenRStepResult, ProofStepResult]

_ORDER = [
    CspSmsAuthenticatorStep.GET_PROCESS,
    CspSmsAuthenticatorStep.GET_AUTH_TOKEN,
    CspSmsAuthenticatorStep.GET_TOKENR,
    CspSmsAuthenticatorStep.GET_PROOF,
]


class AnonymousAuthFlow:
    """Single-use, forward-only authentication session for one user"""

    auth_type = authentication.CspAuthenticationType.BLIND

    def __init__(self, user_id: str, csp: CspTransport, wallet):
        if csp is None:
            raise ValidationError("Invalid CSP object")
        if not user_id:
            raise ValidationError("Invalid User ID")
        if wallet is None:
            raise ValidationError("Invalid wallet")

        self.user_id = user_id
        self.csp = csp
        self.wallet = wallet

        self.state = FlowState.PENDING
        self.last_step: Optional[CspSmsAuthenticatorStep] = None
        self.election_id: Optional[str] = None
        self._auth_token: Optional[str] = None
        self._token: Optional[str] = None
        self._lock = threading.Lock()

    @property
    def next_step(self) -> Optional[CspSmsAuthenticatorStep]:
        if self.state in (FlowState.FINISHED, FlowState.FAILED):
            return None
        if self.last_step is None:
            return _ORDER[0]
        return _ORDER[_ORDER.index(self.last_step) + 1]

    @property
    def is_finished(self) -> bool:
        return self.state in (FlowState.FINISHED, FlowState.FAILED)

    @property
    def awaiting_otp(self) -> bool:
        return self.next_step is CspSmsAuthenticatorStep.GET_TOKENR

    def resume(self, value: Optional[str] = None) -> StepResult:
        """Runs the next step; `value` is the OTP when resuming after GET_AUTH_TOKEN"""
        if not self._lock.acquire(blocking=False):
            raise FlowStateError("The authentication flow is already running a step")
        try:
            step = self.next_step
            if step is None:
                raise FlowStateError(
                    f"The authentication flow is {self.state.value}; start a new one")

            if step is CspSmsAuthenticatorStep.GET_TOKENR and not value:
                # nothing was sent yet, the caller may retry with an OTP
                raise MissingParameterError("An OTP is required to continue")

            self.state = FlowState.RUNNING
            try:
                result = self._run_step(step, value)
            except Exception:
                self.state = FlowState.FAILED
                logger.warning(f"Authentication flow failed at {step.name}")
                raise

            self.last_step = step
            if step is CspSmsAuthenticatorStep.GET_PROOF:
                self.state = FlowState.FINISHED
            logger.info(f"Authentication flow reached {step.name}")
            return result
        finally:
            self._lock.release()

    def run(self, otp_provider: Callable[[AuthTokenStepResult], str]) -> CAProof:
        """Drives the flow to completion, asking `otp_provider` for the OTP"""
        otp = None
        while True:
            result = self.resume(otp)
            otp = None
            if isinstance(result, AuthTokenStepResult):
                otp = otp_provider(result)
            elif isinstance(result, ProofStepResult):
                return result.proof

    def _run_step(self, step: CspSmsAuthenticatorStep, value: Optional[str]) -> StepResult:
        if step is CspSmsAuthenticatorStep.GET_PROCESS:
            return self._get_process()
        if step is CspSmsAuthenticatorStep.GET_AUTH_TOKEN:
            return self._get_auth_token()
        if step is CspSmsAuthenticatorStep.GET_TOKENR:
            return self._get_token_r(value)
        return self._get_proof()

    def _get_process(self) -> ProcessStepResult:
        processes = indexer.get_user_processes(strip0x(self.user_id), self.csp)
        if len(processes) != 1:
            raise AuthenticationError("No process found for user")

        process = processes[0]
        self.election_id = process.election_id
        logger.debug(f"User {truncate(self.user_id)} bound to process {truncate(self.election_id)}")
        return ProcessStepResult(
            election_id=process.election_id,
            remaining_attempts=process.remaining_attempts,
            consumed=process.consumed,
        )

    def _get_auth_token(self) -> AuthTokenStepResult:
        response = authentication.authenticate(
            self.auth_type, [self.user_id], "", 0, self.election_id, self.csp)
        hint = response.get("response")
        if not response.get("authToken") or not hint:
            raise AuthenticationError(response.get("error") or "Could not authenticate user")

        self._auth_token = response["authToken"]
        phone_suffix = hint[0] if isinstance(hint, list) else hint
        return AuthTokenStepResult(auth_token=self._auth_token, phone_suffix=phone_suffix)

    def _get_token_r(self, otp: str) -> TokenRStepResult:
        response = authentication.authenticate(
            self.auth_type, [otp], self._auth_token, 1, self.election_id, self.csp)
        if not response.get("token"):
            raise AuthenticationError("Could not authenticate with OTP")

        self._token = response["token"]
        return TokenRStepResult(token=self._token)

    def _get_proof(self) -> ProofStepResult:
        payload = signatures.get_blinded_payload(self.election_id, self._token, self.wallet)
        blind_signature = signatures.get_signature(
            self.auth_type, payload.hex_blinded, self._token, self.election_id, self.csp)
        proof = signatures.get_proof_from_blind_signature(
            blind_signature, payload.user_secret_data, self.wallet)
        return ProofStepResult(proof=proof)
