import logging

from config import (
    CHALLENGE_STATUSES, SUCCESS_STATUSES, TRUTHY_VERDICTS, SELECTION_SIZE,
    MSG_IDENTITY_NOT_FOUND, MSG_MALFORMED_CHALLENGE, MSG_WRONG_PASSWORD,
)
from schemas.lookup import ChallengeIssued, DirectSuccess, LookupOutcome, LookupRejected, VerificationResult
from schemas.messages import LookupResponse, VerifyResponse

logger = logging.getLogger("uvicorn.error")


def is_truthy_verdict(value) -> bool:
    """Accept ``True`` and its usual stringified forms ("true", "1", ...)."""
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return value == 1
    if isinstance(value, str):
        return value.strip().lower() in TRUTHY_VERDICTS
    return False


def _status(response: LookupResponse) -> str:
    return (response.status or "").strip().lower()


def _signals_success(response: LookupResponse) -> bool:
    return is_truthy_verdict(response.password) or _status(response) in SUCCESS_STATUSES


def _challenge_from(response: LookupResponse):
    if len(response.img_list) != len(response.img_name):
        logger.warning(
            f"[Lookup] image/label length mismatch: {len(response.img_list)} vs {len(response.img_name)}"
        )
        return LookupRejected(message=MSG_MALFORMED_CHALLENGE)
    if len(response.img_list) < SELECTION_SIZE:
        logger.warning(f"[Lookup] only {len(response.img_list)} images offered, need {SELECTION_SIZE}")
        return LookupRejected(message=MSG_MALFORMED_CHALLENGE)
    return ChallengeIssued(
        username=response.username,
        img_list=response.img_list,
        img_name=response.img_name,
    )


def normalize_name_lookup(response: LookupResponse, ok: bool) -> LookupOutcome:
    """Fold a lookup-by-name answer into DirectSuccess, ChallengeIssued or LookupRejected."""
    if not ok:
        return LookupRejected(message=response.error or MSG_IDENTITY_NOT_FOUND)

    if _signals_success(response):
        return DirectSuccess(username=response.username)

    if _status(response) in CHALLENGE_STATUSES:
        return _challenge_from(response)

    return LookupRejected(message=response.error or MSG_IDENTITY_NOT_FOUND)


def normalize_qr_lookup(response: LookupResponse, ok: bool) -> LookupOutcome:
    """Fold a lookup-by-QR answer into one of the lookup outcomes.

    Branches are tried in order:
    1. success flag or success status -> DirectSuccess
    2. secondary-step status with images -> ChallengeIssued
    3. secondary-step status without images -> DirectSuccess
    4. anything else -> LookupRejected naming the raw status and verdict
    """
    if ok:
        if _signals_success(response):
            return DirectSuccess(username=response.username)

        if _status(response) in CHALLENGE_STATUSES:
            if response.img_list:
                return _challenge_from(response)
            logger.warning(f"[Lookup] QR status {response.status!r} without images, treating as success")
            return DirectSuccess(username=response.username)

    reason = response.error or "QR login was not accepted"
    return LookupRejected(
        message=f"{reason} (status={response.status!r}, password={response.password!r})"
    )


def normalize_verification(response: VerifyResponse, ok: bool) -> VerificationResult:
    verdict = ok and is_truthy_verdict(response.password)
    if verdict:
        return VerificationResult(verdict=True)
    return VerificationResult(verdict=False, error_reason=response.error or MSG_WRONG_PASSWORD)
