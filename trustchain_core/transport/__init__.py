# trustchain_core/transport/__init__.py
import os
from typing import Optional

from trustchain_core.claims import OperatorClaim
from trustchain_core.constants import ENV_ACCOUNT_SERVER
from trustchain_core.transport.account_server import AccountServerClient


def account_server_client(config: Optional[dict] = None, operator: Optional[OperatorClaim] = None) -> AccountServerClient:
    """
    Resolve the account server URL from, in order: config["account_server"],
    TRUSTCHAIN_ACCOUNT_SERVER, the operator claim's account_server_url.
    """
    config = config or {}
    url = config.get("account_server") or os.getenv(ENV_ACCOUNT_SERVER)
    if not url and operator is not None:
        url = operator.account_server_url
    return AccountServerClient(url or "", timeout=config.get("timeout", 5))


__all__ = ["AccountServerClient", "account_server_client"]
