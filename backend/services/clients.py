import logging

import httpx
from pydantic import ValidationError as SchemaError

from config import LOOKUP_BY_NAME_PATH, LOOKUP_BY_QR_PATH, VERIFY_PATH, MSG_SERVICE_ERROR
from processing.errors import ServiceError
from processing.normalize import normalize_name_lookup, normalize_qr_lookup, normalize_verification
from schemas.lookup import LookupOutcome, VerificationResult
from schemas.messages import (
    LookupByNameRequest, LookupByQrRequest, LookupResponse, VerifyRequest, VerifyResponse,
)

logger = logging.getLogger("uvicorn.error")


async def _post_json(http: httpx.AsyncClient, path: str, body: dict) -> tuple[bool, dict]:
    """POST ``body`` and return (is_2xx, decoded JSON object).

    Transport failures, 5xx answers and undecodable bodies raise ServiceError;
    4xx answers are returned so the caller can read the collaborator's message.
    """
    try:
        response = await http.post(path, json=body)
    except httpx.HTTPError as e:
        logger.warning(f"[Client] POST {path} failed: {type(e).__name__}: {e}")
        raise ServiceError(MSG_SERVICE_ERROR) from e

    try:
        data = response.json()
    except ValueError:
        data = None

    if not isinstance(data, dict):
        if response.is_success:
            logger.warning(f"[Client] POST {path} -> {response.status_code} with non-object body")
            raise ServiceError(MSG_SERVICE_ERROR, status_code=response.status_code)
        data = {}

    if response.is_server_error:
        logger.warning(f"[Client] POST {path} -> {response.status_code}: {data.get('error')}")
        raise ServiceError(data.get("error") or MSG_SERVICE_ERROR, status_code=response.status_code)

    return response.is_success, data


class IdentityLookupClient:
    def __init__(self, http: httpx.AsyncClient, name_path: str = LOOKUP_BY_NAME_PATH,
                 qr_path: str = LOOKUP_BY_QR_PATH):
        self.http = http
        self.name_path = name_path
        self.qr_path = qr_path

    async def lookup_by_name(self, username: str) -> LookupOutcome:
        body = LookupByNameRequest(inputUsername=username).model_dump()
        ok, data = await _post_json(self.http, self.name_path, body)
        return normalize_name_lookup(_parse(LookupResponse, data), ok)

    async def lookup_by_qr(self, payload: str) -> LookupOutcome:
        body = LookupByQrRequest(qr_data=payload).model_dump()
        ok, data = await _post_json(self.http, self.qr_path, body)
        return normalize_qr_lookup(_parse(LookupResponse, data), ok)


class ChallengeVerificationClient:
    def __init__(self, http: httpx.AsyncClient, path: str = VERIFY_PATH):
        self.http = http
        self.path = path

    async def verify(self, username: str, labels: list[str]) -> VerificationResult:
        body = VerifyRequest(username=username, images=labels).model_dump()
        ok, data = await _post_json(self.http, self.path, body)
        return normalize_verification(_parse(VerifyResponse, data), ok)


def _parse(model, data: dict):
    try:
        return model.model_validate(data)
    except SchemaError as e:
        logger.warning(f"[Client] unexpected {model.__name__} shape: {e.error_count()} errors")
        raise ServiceError(MSG_SERVICE_ERROR) from e
