"""
Shared fixtures: an in-memory CSP and a pure Python circuit module
"""

import secrets
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

import pytest

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from blind import blind_signature  # noqa: E402
from config.config import SNARK_SCALAR_FIELD  # noqa: E402
from utils.errors import NetworkError  # noqa: E402
from utils.wallet import EphemeralWallet  # noqa: E402
from zk.circuit import CircuitInstance, fnv_hash, to_array32  # noqa: E402

USER_ID = "23e4851990b1bdb313c3bae2e37e1a4c19f8519550561de30b38a413e45c22d8"
ELECTION_ID = "c5d2460186f7233c927e7db2dcc703c0e500b653ca82273b7bfad8045d85a470"
OTP = "123456"
PHONE_SUFFIX = "4321"


class FakeCsp:
    """CSP double speaking the REST protocol and signing blindly"""

    def __init__(self, elections: Optional[List[str]] = None, attempts: int = 3):
        self.secret_key = int.from_bytes(secrets.token_bytes(32), "big") % blind_signature.SECP256K1_N
        self.public_key = blind_signature.public_key_from_secret(self.secret_key)
        self.elections = elections if elections is not None else [ELECTION_ID]
        self.attempts = {e: attempts for e in self.elections}
        self.consumed = {e: False for e in self.elections}
        self.auth_tokens: Dict[str, str] = {}
        self.nonces: Dict[str, int] = {}
        self.calls: List[Dict[str, Any]] = []
        self.signed_payloads: List[str] = []

    def send_request(self, path: str, body: Dict[str, Any], headers=None) -> Dict[str, Any]:
        self.calls.append({"path": path, "body": dict(body)})
        parts = path.strip("/").split("/")

        if parts[:3] == ["auth", "elections", "indexer"]:
            return {"elections": [
                {"electionId": e, "remainingAttempts": self.attempts[e],
                 "consumed": self.consumed[e], "extra": []}
                for e in self.elections
            ]}

        election_id = parts[2]
        if election_id not in self.attempts:
            raise NetworkError("election not found")

        if parts[3] == "info":
            return {"title": "SMS", "authType": "blind",
                    "authSteps": [{"fields": [{"title": "User", "type": "text"}]},
                                  {"fields": [{"title": "OTP", "type": "int4"}]}]}

        if parts[4] == "auth":
            return self._auth(election_id, int(parts[5]), body)

        if parts[4] == "sign":
            return self._sign(body)

        raise NetworkError(f"unknown endpoint {path}")

    def _auth(self, election_id: str, step: int, body: Dict[str, Any]) -> Dict[str, Any]:
        if step == 0:
            if self.attempts[election_id] <= 0:
                raise NetworkError("too many attempts")
            self.attempts[election_id] -= 1
            token = secrets.token_hex(16)
            self.auth_tokens[token] = election_id
            return {"authToken": token, "response": [PHONE_SUFFIX]}

        token = body.get("authToken")
        if token not in self.auth_tokens:
            raise NetworkError("invalid auth token")
        if body["authData"] != [OTP]:
            raise NetworkError("challenge not completed")
        election_id = self.auth_tokens.pop(token)
        self.consumed[election_id] = True

        k, r_point = blind_signature.new_request_parameters()
        hex_r = blind_signature.encode_point(r_point)
        self.nonces[hex_r] = k
        return {"token": hex_r}

    def _sign(self, body: Dict[str, Any]) -> Dict[str, Any]:
        k = self.nonces.pop(body["token"], None)
        if k is None:
            raise NetworkError("token not found")
        self.signed_payloads.append(body["payload"])
        return {"signature": blind_signature.blind_sign(self.secret_key, body["payload"], k)}


class FakeCircuit:
    """Circuit exports following the shared memory protocol

    Witness layout: [1, <inputs in declaration order>, sum(inputs) mod p]
    """

    def __init__(self, runtime: CircuitInstance, signals: Dict[str, int],
                 prime: int = SNARK_SCALAR_FIELD, n32: int = 8,
                 assert_on: Optional[str] = None, message: str = ""):
        self.runtime = runtime
        self.prime = prime
        self.n32 = n32
        self.memory = [0] * n32
        self.assert_on = fnv_hash(assert_on) if assert_on else None
        self.message = message
        self._message_pos = 0
        self.layout = {}
        offset = 0
        for name, size in signals.items():
            self.layout[fnv_hash(name)] = (offset, size)
            offset += size
        self.n_inputs = offset
        self.values: Dict[int, int] = {}
        self.computed = False
        self.init_calls = 0
        self.init_flags: List[int] = []

    def exports(self):
        return {
            "getVersion": lambda: 2,
            "getFieldNumLen32": lambda: self.n32,
            "getRawPrime": self.get_raw_prime,
            "getWitnessSize": lambda: self.n_inputs + 2,
            "init": self.init,
            "readSharedRWMemory": lambda j: self.memory[j],
            "writeSharedRWMemory": self.write_memory,
            "setInputSignal": self.set_input_signal,
            "getWitness": self.get_witness,
            "getMessageChar": self.get_message_char,
        }

    def _store(self, value: int):
        limbs = to_array32(value, self.n32)
        for j in range(self.n32):
            self.memory[j] = limbs[self.n32 - 1 - j]

    def _load(self) -> int:
        value = 0
        for j in reversed(range(self.n32)):
            value = (value << 32) | (self.memory[j] & 0xFFFFFFFF)
        return value

    def get_raw_prime(self):
        self._store(self.prime)

    def init(self, sanity_check):
        self.init_calls += 1
        self.init_flags.append(sanity_check)
        self.values = {}
        self.computed = False

    def write_memory(self, j, value):
        self.memory[j] = value & 0xFFFFFFFF

    def set_input_signal(self, h_msb, h_lsb, index):
        key = (h_msb & 0xFFFFFFFF, h_lsb & 0xFFFFFFFF)
        if key not in self.layout:
            self.runtime.exception_handler(1)
        offset, size = self.layout[key]
        if index >= size:
            self.runtime.exception_handler(2)
        if offset + index in self.values:
            self.runtime.exception_handler(3)
        if key == self.assert_on:
            self.runtime.exception_handler(4)
        self.values[offset + index] = self._load()
        if len(self.values) == self.n_inputs:
            self.computed = True

    def get_witness(self, i):
        if i == 0:
            self._store(1)
        elif i <= self.n_inputs:
            self._store(self.values[i - 1])
        else:
            self._store(sum(self.values.values()) % self.prime)

    def get_message_char(self):
        if self._message_pos < len(self.message):
            c = self.message[self._message_pos]
            self._message_pos += 1
            return ord(c)
        return 0


class FakeCircuitModule:
    """Stands in for WasmCircuitModule; each instantiate() is a fresh circuit"""

    def __init__(self, signals: Dict[str, int], **kwargs):
        self.signals = signals
        self.kwargs = kwargs
        self.instances: List[FakeCircuit] = []

    def instantiate(self) -> CircuitInstance:
        runtime = CircuitInstance()
        circuit = FakeCircuit(runtime, self.signals, **self.kwargs)
        self.instances.append(circuit)
        runtime.attach(circuit.exports())
        return runtime


VOTE_SIGNALS = {
    "censusRoot": 1,
    "censusSiblings": 5,
    "index": 1,
    "secretKey": 1,
    "voteHash": 2,
    "processId": 2,
    "nullifier": 1,
}


@pytest.fixture
def fake_csp():
    return FakeCsp()


@pytest.fixture
def wallet():
    return EphemeralWallet()


@pytest.fixture
def vote_circuit():
    return FakeCircuitModule(VOTE_SIGNALS)
