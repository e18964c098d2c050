"""
auth/breach.py -- Breached password check using a k-anonymity range lookup.

Protocol (Pwned Passwords range API):
  1. SHA-1 the password, upper-case hex (40 chars).
  2. Send only the first 5 chars:  GET {base}/range/{prefix}
  3. The service answers 200 with one "<35-char suffix>:<count>" per line for
     every breached password sharing that prefix.
  4. Look for our own suffix locally.

Neither the password nor its full digest ever leaves the process. The
service operator only learns a prefix shared by hundreds of hashes.

Failure policy: any transport error, timeout, non-200 status or malformed
line raises BreachProtocolError. There is no code path that reports "not
compromised" after an error, and nothing is retried. Callers decide whether
an unavailable check blocks the password change.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import hashlib
import logging

import requests

from auth.errors import BreachProtocolError

logger = logging.getLogger("pushgate.auth.breach")

DEFAULT_BASE_URL = "https://api.pwnedpasswords.com"
PREFIX_LENGTH = 5


def _sha1_hex(password: str) -> str:
    # SHA-1 is what the range API indexes by; it is not used for storage.
    return hashlib.sha1(password.encode("utf-8"), usedforsecurity=False).hexdigest().upper()


class BreachChecker:
    """Checks passwords against a breached-password corpus.

    Usage:
        checker = BreachChecker()
        if checker.is_compromised(candidate):
            reject()

    A requests.Session is created per checker for connection pooling unless
    one is injected (tests inject a MagicMock and count calls).
    """

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 5.0,
        session: requests.Session | None = None,
    ) -> None:
        if timeout <= 0:
            raise ValueError("BreachChecker timeout must be a positive number of seconds")
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        if session is None:
            session = requests.Session()
            # Known public API -- a redirect chain longer than this is suspicious.
            session.max_redirects = 3
        self._session = session

    def is_compromised(self, password: str) -> bool:
        """Return True if password appears in the breach corpus.

        The empty password is always compromised and costs no network call.
        Raises BreachProtocolError when the check cannot be completed.
        """
        if not password:
            return True

        digest = _sha1_hex(password)
        prefix, suffix = digest[:PREFIX_LENGTH], digest[PREFIX_LENGTH:]

        logger.info("Checking breach corpus for hashes starting with '%s'", prefix)
        body = self._fetch_range(prefix)

        for line in body.splitlines():
            line = line.strip()
            if not line:
                continue
            candidate, count = _parse_line(line)
            if candidate.upper() == suffix:
                logger.info("Password found in breach corpus (prefix '%s', seen %d times)", prefix, count)
                return True
        return False

    def _fetch_range(self, prefix: str) -> str:
        url = f"{self.base_url}/range/{prefix}"
        try:
            resp = self._session.get(url, timeout=self.timeout)
        except requests.RequestException as e:
            logger.warning("Breach range lookup failed for prefix '%s': %s", prefix, e)
            raise BreachProtocolError(f"range lookup failed: {e}") from e

        if resp.status_code != 200:
            logger.warning("Breach range lookup for prefix '%s' returned HTTP %d", prefix, resp.status_code)
            raise BreachProtocolError(f"range lookup returned HTTP {resp.status_code}")
        return resp.text


def _parse_line(line: str) -> tuple[str, int]:
    """Split one "suffix:count" line. Anything else is a protocol violation."""
    parts = line.split(":")
    if len(parts) != 2 or not parts[0]:
        raise BreachProtocolError(f"malformed range response line: {line!r}")
    suffix, count = parts
    try:
        return suffix, int(count)
    except ValueError as exc:
        raise BreachProtocolError(f"malformed range response line: {line!r}") from exc
