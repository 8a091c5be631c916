import logging

import httpx

from config import LOGIN_API_BASE_URL, LOGIN_API_TIMEOUT, LOOKUP_BY_NAME_PATH, LOOKUP_BY_QR_PATH, VERIFY_PATH
from services.clients import IdentityLookupClient, ChallengeVerificationClient
from services.registry import ServiceRegistry

logger = logging.getLogger("uvicorn.error")


def load_all_services(
    base_url: str = LOGIN_API_BASE_URL,
    transport: httpx.AsyncBaseTransport | None = None,
) -> ServiceRegistry:
    http = httpx.AsyncClient(
        base_url=base_url,
        timeout=httpx.Timeout(LOGIN_API_TIMEOUT),
        transport=transport,
    )
    registry = ServiceRegistry(
        http=http,
        identity=IdentityLookupClient(http, name_path=LOOKUP_BY_NAME_PATH, qr_path=LOOKUP_BY_QR_PATH),
        verification=ChallengeVerificationClient(http, path=VERIFY_PATH),
    )
    logger.info(f"Collaborator clients ready: base_url={base_url}, timeout={LOGIN_API_TIMEOUT}")
    return registry
