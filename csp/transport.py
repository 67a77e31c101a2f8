"""
Transport used to reach a Credential Service Provider

The protocol modules only depend on `CspTransport.send_request`; `HttpCsp` is
the concrete implementation over HTTP(S).
"""

import logging
from typing import Any, Dict, Optional, Protocol

import requests

from utils.errors import NetworkError, ValidationError

logger = logging.getLogger(__name__)


class CspTransport(Protocol):
    def send_request(self, path: str, body: Dict[str, Any],
                     headers: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
        ...


class HttpCsp:
    """HTTP client for a CSP service

    Requests with an empty body are sent as GET, any other body is POSTed
    as JSON. A non-200 status or a body carrying `error` raises NetworkError.
    """

    def __init__(self, uri: str, public_key: str, api_version: str = "v1",
                 timeout: float = 3.0, session: Optional[requests.Session] = None):
        if not uri or not public_key:
            raise ValidationError("Invalid CSP info")
        self.base_uri = uri.rstrip("/")
        self.uri = f"{self.base_uri}/{api_version}"
        self.public_key = public_key
        self.timeout = timeout
        self.session = session or requests.Session()
        self.has_timed_out = False

    def send_request(self, path: str, body: Dict[str, Any],
                     headers: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
        if not isinstance(body, dict):
            raise ValidationError("The payload should be a dictionary")
        self.has_timed_out = False
        url = self.uri + path

        try:
            if body:
                response = self.session.post(
                    url, json=body, headers=headers or {}, timeout=self.timeout)
            else:
                response = self.session.get(
                    url, headers=headers or {}, timeout=self.timeout)
        except requests.Timeout as e:
            self.has_timed_out = True
            raise NetworkError(f"Time out: {e}")
        except requests.RequestException as e:
            raise NetworkError(str(e))

        return self._check_response(response)

    def _check_response(self, response: requests.Response) -> Dict[str, Any]:
        try:
            payload = response.json()
        except ValueError:
            payload = None

        if response.status_code != 200:
            detail = payload.get("error") if isinstance(payload, dict) else None
            raise NetworkError(detail or f"HTTP {response.status_code}")
        if not isinstance(payload, dict):
            raise NetworkError("Invalid CSP response body")
        if payload.get("error"):
            raise NetworkError(payload["error"])

        return payload

    def check_ping(self) -> bool:
        try:
            response = self.session.get(
                f"{self.base_uri}/ping", timeout=self.timeout)
        except requests.RequestException as e:
            logger.warning(f"CSP ping failed: {e}")
            return False
        return response.status_code == 200
