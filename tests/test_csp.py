from unittest import mock

import pytest
import requests

from blind import blind_signature
from csp import (
    CAProof,
    HttpCsp,
    ProofCaSignatureType,
    authenticate,
    encode_ca_bundle,
    get_authentication_info,
    get_blinded_payload,
    get_proof_from_blind_signature,
    get_signature,
    get_user_processes,
)
from utils.errors import (
    AuthenticationError,
    MissingTokenError,
    NetworkError,
    ProtocolError,
    ValidationError,
)
from utils.wallet import keccak256

from conftest import ELECTION_ID, OTP, PHONE_SUFFIX, USER_ID, FakeCsp


class RecordingCsp:
    def __init__(self, response=None, error=None):
        self.response = response if response is not None else {}
        self.error = error
        self.calls = []

    def send_request(self, path, body, headers=None):
        self.calls.append((path, body))
        if self.error:
            raise self.error
        return self.response


class TestAuthentication:

    def test_get_authentication_info(self, fake_csp):
        info = get_authentication_info("0x" + ELECTION_ID, fake_csp)

        assert info.auth_type == "blind"
        assert len(info.auth_steps) == 2
        assert fake_csp.calls[0]["path"] == f"/auth/elections/{ELECTION_ID}/info"

    @pytest.mark.parametrize("process_id", [None, "", "abcd", "0x" + "a" * 62, "g" * 64])
    def test_invalid_process_id_fails_before_network(self, process_id):
        csp = RecordingCsp()
        with pytest.raises(ValidationError):
            get_authentication_info(process_id, csp)
        with pytest.raises(ValidationError):
            authenticate("blind", [USER_ID], "", 0, process_id, csp)
        assert csp.calls == []

    def test_info_failure_is_wrapped(self):
        csp = RecordingCsp(error=NetworkError("boom"))
        with pytest.raises(NetworkError, match="The process info could not be retrieved: boom"):
            get_authentication_info(ELECTION_ID, csp)

    @pytest.mark.parametrize("token", [None, ""])
    def test_missing_token_rejected_before_network(self, token):
        csp = RecordingCsp()
        with pytest.raises(MissingTokenError):
            authenticate("blind", [OTP], token, 1, ELECTION_ID, csp)
        assert csp.calls == []

    def test_unknown_auth_type_rejected(self):
        csp = RecordingCsp()
        with pytest.raises(ValidationError):
            authenticate("password", [USER_ID], "", 0, ELECTION_ID, csp)
        assert csp.calls == []

    @pytest.mark.parametrize("auth_type,path", [
        ("blind", f"/auth/elections/{ELECTION_ID}/blind/auth/1"),
        ("ecdsa", f"/auth/elections/{ELECTION_ID}/ecdsa/auth/1"),
        ("sharedkey", f"/auth/elections/{ELECTION_ID}/sharedkey/1"),
    ])
    def test_endpoint_per_auth_type(self, auth_type, path):
        csp = RecordingCsp(response={"token": "t"})
        authenticate(auth_type, ["0x" + OTP], "tok", 1, ELECTION_ID, csp)

        assert csp.calls == [(path, {"authData": [OTP], "authToken": "tok"})]

    def test_step_zero_omits_empty_token(self):
        csp = RecordingCsp(response={"authToken": "a", "response": ["1"]})
        authenticate("blind", [USER_ID], "", 0, ELECTION_ID, csp)

        assert csp.calls[0][1] == {"authData": [USER_ID]}

    def test_remote_rejection_is_authentication_error(self, fake_csp):
        first = authenticate("blind", [USER_ID], "", 0, ELECTION_ID, fake_csp)
        with pytest.raises(AuthenticationError, match="Authentication error: challenge not completed"):
            authenticate("blind", ["000000"], first["authToken"], 1, ELECTION_ID, fake_csp)

    def test_error_field_in_response(self):
        csp = RecordingCsp(response={"error": "expired"})
        with pytest.raises(AuthenticationError, match="expired"):
            authenticate("blind", [USER_ID], "", 0, ELECTION_ID, csp)


class TestIndexer:

    def test_get_user_processes(self, fake_csp):
        processes = get_user_processes("0x" + USER_ID, fake_csp)

        assert len(processes) == 1
        assert processes[0].election_id == ELECTION_ID
        assert processes[0].remaining_attempts == 3
        assert processes[0].consumed is False
        assert fake_csp.calls[0]["path"] == f"/auth/elections/indexer/{USER_ID}"

    def test_missing_elections_is_protocol_error(self):
        with pytest.raises(ProtocolError):
            get_user_processes(USER_ID, RecordingCsp(response={"foo": 1}))

    def test_network_failure_is_wrapped(self):
        csp = RecordingCsp(error=NetworkError("down"))
        with pytest.raises(NetworkError, match="Error retrieving user's process: down"):
            get_user_processes(USER_ID, csp)

    def test_invalid_user_id(self):
        with pytest.raises(ValidationError):
            get_user_processes("", RecordingCsp())


class TestSignatures:

    def test_ca_bundle_encoding(self):
        pid = bytes(range(32))
        address = bytes(range(20))
        encoded = encode_ca_bundle(pid, address)

        assert encoded == b"\x0a\x20" + pid + b"\x12\x14" + address

    def test_blinded_payload_hides_commitment(self, wallet):
        _, r_point = blind_signature.new_request_parameters()
        payload = get_blinded_payload(ELECTION_ID, blind_signature.encode_point(r_point), wallet)
        commitment = keccak256(encode_ca_bundle(
            bytes.fromhex(ELECTION_ID), bytes.fromhex(wallet.address[2:]))).hex()

        assert len(payload.hex_blinded) == 64
        assert payload.hex_blinded != commitment

    def test_get_signature_validation(self):
        csp = RecordingCsp(response={"signature": "00"})
        with pytest.raises(ValidationError):
            get_signature("blind", "aa", "tok", "1234", csp)
        with pytest.raises(MissingTokenError):
            get_signature("blind", "aa", "", ELECTION_ID, csp)
        with pytest.raises(ValidationError):
            get_signature("sharedkey", "aa", "tok", ELECTION_ID, csp)
        with pytest.raises(ValidationError):
            get_signature("other", "aa", "tok", ELECTION_ID, csp)
        assert csp.calls == []

    def test_get_signature_request(self):
        csp = RecordingCsp(response={"signature": "ab" * 32})
        signature = get_signature("ecdsa", "aa", "tok", "0x" + ELECTION_ID, csp)

        assert signature == "ab" * 32
        assert csp.calls == [(f"/auth/elections/{ELECTION_ID}/ecdsa/sign",
                              {"payload": "aa", "token": "tok"})]

    def test_get_signature_missing_field(self):
        with pytest.raises(ProtocolError):
            get_signature("blind", "aa", "tok", ELECTION_ID, RecordingCsp(response={}))

    def test_get_signature_network_failure(self):
        csp = RecordingCsp(error=NetworkError("timeout"))
        with pytest.raises(NetworkError, match="Error getting the blind signature: timeout"):
            get_signature("blind", "aa", "tok", ELECTION_ID, csp)


def test_end_to_end_blind_credential(fake_csp, wallet):
    first = authenticate("blind", [USER_ID], "", 0, ELECTION_ID, fake_csp)
    assert first["authToken"]
    assert first["response"] == [PHONE_SUFFIX]

    second = authenticate("blind", [OTP], first["authToken"], 1, ELECTION_ID, fake_csp)
    token = second["token"]

    payload = get_blinded_payload(ELECTION_ID, token, wallet)
    assert len(payload.hex_blinded) == 64

    signature = get_signature("blind", payload.hex_blinded, token, ELECTION_ID, fake_csp)
    assert signature

    proof = get_proof_from_blind_signature(signature, payload.user_secret_data, wallet)
    assert isinstance(proof, CAProof)
    assert proof.type is ProofCaSignatureType.ECDSA_BLIND_PIDSALTED
    assert proof.voter_address == wallet.address
    assert proof.to_dict()["type"] == "ECDSA_BLIND_PIDSALTED"

    commitment = keccak256(encode_ca_bundle(
        bytes.fromhex(ELECTION_ID), bytes.fromhex(wallet.address[2:]))).hex()
    assert blind_signature.verify(commitment, proof.signature, fake_csp.public_key)
    # the CSP only ever saw the blinded value
    assert fake_csp.signed_payloads == [payload.hex_blinded]
    assert commitment not in fake_csp.signed_payloads


class TestHttpCsp:

    def _response(self, status=200, payload=None):
        response = mock.Mock()
        response.status_code = status
        response.json.return_value = payload
        return response

    def test_get_for_empty_body(self):
        session = mock.Mock()
        session.get.return_value = self._response(payload={"elections": []})
        csp = HttpCsp("https://csp.example.org/", "02ab", session=session)

        assert csp.send_request("/auth/elections/indexer/u", {}) == {"elections": []}
        session.get.assert_called_once_with(
            "https://csp.example.org/v1/auth/elections/indexer/u", headers={}, timeout=3.0)

    def test_post_for_body(self):
        session = mock.Mock()
        session.post.return_value = self._response(payload={"token": "t"})
        csp = HttpCsp("https://csp.example.org", "02ab", api_version="v2", session=session)

        csp.send_request("/x", {"authData": ["1"]}, {"X-Test": "1"})
        session.post.assert_called_once_with(
            "https://csp.example.org/v2/x", json={"authData": ["1"]},
            headers={"X-Test": "1"}, timeout=3.0)

    def test_error_status(self):
        session = mock.Mock()
        session.post.return_value = self._response(status=400, payload={"error": "bad otp"})
        csp = HttpCsp("https://csp.example.org", "02ab", session=session)

        with pytest.raises(NetworkError, match="bad otp"):
            csp.send_request("/x", {"a": 1})

    def test_error_field_with_200(self):
        session = mock.Mock()
        session.get.return_value = self._response(payload={"error": "nope"})
        csp = HttpCsp("https://csp.example.org", "02ab", session=session)

        with pytest.raises(NetworkError, match="nope"):
            csp.send_request("/x", {})

    def test_timeout(self):
        session = mock.Mock()
        session.get.side_effect = requests.Timeout("slow")
        csp = HttpCsp("https://csp.example.org", "02ab", session=session)

        with pytest.raises(NetworkError):
            csp.send_request("/x", {})
        assert csp.has_timed_out

    def test_requires_uri_and_key(self):
        with pytest.raises(ValidationError):
            HttpCsp("", "02ab")
        with pytest.raises(ValidationError):
            HttpCsp("https://csp.example.org", "")

    def test_check_ping(self):
        session = mock.Mock()
        session.get.return_value = self._response(payload={})
        csp = HttpCsp("https://csp.example.org", "02ab", session=session)

        assert csp.check_ping()
        session.get.assert_called_once_with("https://csp.example.org/ping", timeout=3.0)
