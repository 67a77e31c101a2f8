"""
CSP indexer: which processes a user takes part in
"""

import logging
from dataclasses import dataclass, field
from typing import List

from utils.errors import NetworkError, ProtocolError, ValidationError
from utils.utils import strip0x

from .transport import CspTransport

logger = logging.getLogger(__name__)


@dataclass
class UserProcess:
    election_id: str
    remaining_attempts: int
    consumed: bool
    extra: List[str] = field(default_factory=list)


def get_user_processes(user_id: str, csp: CspTransport) -> List[UserProcess]:
    """Asks the CSP indexer for the elections the given user participates in"""
    if not user_id or not isinstance(user_id, str):
        raise ValidationError("Invalid user Id")
    if csp is None:
        raise ValidationError("Invalid CSP object")

    try:
        response = csp.send_request(
            f"/auth/elections/indexer/{strip0x(user_id)}", {}, {})
    except NetworkError as e:
        raise NetworkError(f"Error retrieving user's process: {e}") from e

    if "elections" not in response:
        raise ProtocolError("Error retrieving user's process: Invalid csp response")

    processes = []
    for entry in response["elections"] or []:
        try:
            processes.append(UserProcess(
                election_id=entry["electionId"],
                remaining_attempts=int(entry["remainingAttempts"]),
                consumed=bool(entry["consumed"]),
                extra=list(entry.get("extra") or []),
            ))
        except (KeyError, TypeError, ValueError) as e:
            raise ProtocolError(
                f"Error retrieving user's process: malformed entry ({e})") from e

    logger.debug(f"Indexer returned {len(processes)} process(es)")
    return processes
