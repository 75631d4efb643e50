# trustchain_core/transport/account_server.py
import time
from typing import Optional

import requests

from trustchain_core.constants import ACCOUNT_SERVER_RETRIES, ACCOUNT_SERVER_TIMEOUT
from trustchain_core.errors import AccountServerError, AccountServerTransientError, Conflict, NotFound
from trustchain_core.logger import get_logger
from trustchain_core.tokens import decode_token

log = get_logger("trustchain.transport.account_server")


class AccountServerClient:
    """
    HTTP client for a remote token server.

    - push(token): POST the token to /accounts/<subject>
    - pull(public_key): GET /accounts/<public_key>

    Only token bytes cross this boundary. Transient failures (connection
    errors, 5xx) are retried with a short linear backoff.
    """

    def __init__(self, base_url: str, timeout: float = ACCOUNT_SERVER_TIMEOUT,
                 retries: int = ACCOUNT_SERVER_RETRIES, session: Optional[requests.Session] = None):
        if not base_url:
            raise AccountServerError("account server url is not configured")
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.retries = max(1, retries)
        self.session = session or requests.Session()

    def _url(self, public_key: str) -> str:
        return f"{self.base_url}/accounts/{public_key}"

    def _request(self, method: str, url: str, **kwargs) -> requests.Response:
        last: Optional[Exception] = None
        for attempt in range(1, self.retries + 1):
            try:
                res = self.session.request(method, url, timeout=self.timeout, **kwargs)
            except requests.RequestException as e:
                last = AccountServerTransientError(f"{method} {url} failed: {e}")
            else:
                if res.status_code < 500:
                    return res
                last = AccountServerTransientError(f"{method} {url} returned {res.status_code}")
            log.warning(f"[ACCOUNT SERVER] attempt {attempt}/{self.retries}: {last}")
            if attempt < self.retries:
                time.sleep(0.5 * attempt)
        raise last

    def push(self, token: str) -> dict:
        claim = decode_token(token)
        url = self._url(claim.subject)
        log.info(f"[ACCOUNT SERVER PUSH] → {url} | {claim.type.value} {claim.name!r}")
        res = self._request("POST", url, data=token.encode("utf-8"),
                            headers={"Content-Type": "application/jwt"})
        if res.status_code == 409:
            raise Conflict(f"account server rejected {claim.name!r}: {res.text.strip()}")
        if not res.ok:
            raise AccountServerError(f"account server returned {res.status_code}: {res.text.strip()}")
        try:
            return res.json()
        except ValueError:
            return {"status": res.status_code, "message": res.text.strip()}

    def pull(self, public_key: str) -> str:
        url = self._url(public_key)
        log.info(f"[ACCOUNT SERVER PULL] → {url}")
        res = self._request("GET", url, headers={"Accept": "application/jwt"})
        if res.status_code == 404:
            raise NotFound(f"account server has no token for {public_key}")
        if not res.ok:
            raise AccountServerError(f"account server returned {res.status_code}: {res.text.strip()}")
        token = res.text.strip()
        decode_token(token)
        return token
