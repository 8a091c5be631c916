import asyncio
import inspect
import logging
from typing import Awaitable, Callable

from config import (
    SESSION_REDIRECT_PATH, MSG_NAME_REQUIRED, MSG_QR_REQUIRED, MSG_PICK_IMAGES, MSG_SERVICE_ERROR,
)
from processing.errors import LoginFlowError, ServiceError, ValidationError
from processing.selection import toggle_index, payload_labels
from schemas.lookup import ChallengeIssued, DirectSuccess, LookupRejected
from schemas.messages import ImageEntry, LoginStateMessage
from state.session import (
    LoginSession, LoginStep, EntryPath, ChallengeImage, ChallengeSet, SessionGrant,
    CHALLENGE_STEPS, BUSY_STEPS,
)

logger = logging.getLogger("uvicorn.error")

OnVerified = Callable[[SessionGrant], Awaitable[None] | None]


class _Abandoned(Exception):
    """The in-flight call was cancelled by reset()."""


class CredentialChallengeController:
    """Drives one login attempt: identity -> image challenge -> verdict -> hand-off.

    Operations never raise. Callers read ``step``, ``error_message`` and
    ``last_error`` after each call.
    """

    def __init__(self, identity, verification, on_verified: OnVerified | None = None,
                 redirect_to: str = SESSION_REDIRECT_PATH, session: LoginSession | None = None):
        self.identity = identity
        self.verification = verification
        self.on_verified = on_verified
        self.redirect_to = redirect_to
        self.session = session or LoginSession()
        self._inflight: asyncio.Future | None = None
        self._attempt = 0

    # --- Read side ---

    @property
    def step(self) -> LoginStep:
        return self.session.step

    @property
    def error_message(self) -> str | None:
        return self.session.error_message

    @property
    def last_error(self) -> Exception | None:
        return self.session.last_error

    @property
    def challenge(self) -> ChallengeSet | None:
        return self.session.challenge

    @property
    def selected(self) -> list[int]:
        return list(self.session.selected)

    @property
    def grant(self) -> SessionGrant | None:
        return self.session.grant

    def snapshot(self) -> LoginStateMessage:
        session = self.session
        images = None
        if session.challenge is not None:
            images = [
                ImageEntry(index=i, path=image.path, label=image.label)
                for i, image in enumerate(session.challenge.images)
            ]
        return LoginStateMessage(
            step=session.step.value,
            via=session.via.value if session.via else None,
            error=session.error_message,
            images=images,
            selected=list(session.selected),
            redirect_to=session.grant.redirect_to if session.grant else None,
        )

    # --- Entry paths ---

    async def submit_identity(self, raw_input: str) -> LoginStep:
        if self._reject_if_busy("submit_identity"):
            return self.step
        if self.step != LoginStep.IDLE:
            return self._fail(ValidationError(f"Cannot submit a name while {self.step.value}"))
        if not raw_input or not raw_input.strip():
            return self._fail(ValidationError(MSG_NAME_REQUIRED))

        self._begin(LoginStep.AWAITING_CHALLENGE, EntryPath.NAME)
        logger.info(f"[Login] name lookup for {raw_input!r}")
        try:
            outcome = await self._call(self.identity.lookup_by_name(raw_input))
        except _Abandoned:
            return self.step
        except ServiceError as e:
            return self._back_to_idle(e)

        return await self._apply_lookup(outcome, subject=raw_input)

    async def submit_qr_payload(self, payload: str) -> LoginStep:
        if self._reject_if_busy("submit_qr_payload"):
            return self.step
        if self.step != LoginStep.IDLE:
            return self._fail(ValidationError(f"Cannot scan a QR code while {self.step.value}"))
        if not payload or not payload.strip():
            return self._fail(ValidationError(MSG_QR_REQUIRED))

        self._begin(LoginStep.AWAITING_CHALLENGE, EntryPath.QR)
        logger.info(f"[Login] QR lookup, payload length={len(payload)}")
        try:
            outcome = await self._call(self.identity.lookup_by_qr(payload))
        except _Abandoned:
            return self.step
        except ServiceError as e:
            return self._back_to_idle(e)

        subject = getattr(outcome, "username", None) or payload
        return await self._apply_lookup(outcome, subject=subject)

    # --- Image challenge ---

    def toggle_selection(self, index: int) -> LoginStep:
        if self._reject_if_busy("toggle_selection"):
            return self.step
        if self.step not in CHALLENGE_STEPS:
            return self._fail(ValidationError(f"No pictures to pick while {self.step.value}"))
        if not 0 <= index < len(self.session.challenge):
            return self._fail(ValidationError(f"Picture {index} does not exist"))

        self.session.selected = toggle_index(
            self.session.selected, index, self.session.selection_size,
        )
        self.session.step = LoginStep.CHALLENGE_PRESENTED
        self.session.last_error = None
        return self.step

    async def submit_challenge(self) -> LoginStep:
        if self._reject_if_busy("submit_challenge"):
            return self.step
        if self.step not in CHALLENGE_STEPS:
            return self._fail(ValidationError(f"No pictures to submit while {self.step.value}"))
        if len(self.session.selected) != self.session.selection_size:
            return self._fail(ValidationError(MSG_PICK_IMAGES))

        challenge = self.session.challenge
        labels = payload_labels(challenge, self.session.selected)
        self._begin(LoginStep.VERIFYING, self.session.via)
        logger.info(f"[Login] verifying {challenge.subject_id!r} with {len(labels)} labels")
        try:
            result = await self._call(self.verification.verify(challenge.subject_id, labels))
        except _Abandoned:
            return self.step
        except ServiceError as e:
            # Selection survives a transport failure so the user can retry as is
            self.session.step = LoginStep.CHALLENGE_PRESENTED
            return self._record(e)

        if result.verdict:
            return await self._hand_off(challenge.subject_id)

        logger.info(f"[Login] picture password rejected for {challenge.subject_id!r}")
        self.session.step = LoginStep.REJECTED
        self.session.selected = []
        self.session.error_message = result.error_reason
        self.session.last_error = None
        return self.step

    def cancel_challenge(self) -> LoginStep:
        if self._reject_if_busy("cancel_challenge"):
            return self.step
        if self.step not in CHALLENGE_STEPS:
            return self._fail(ValidationError(f"Nothing to cancel while {self.step.value}"))
        logger.info("[Login] challenge cancelled")
        self.session.reset()
        return self.step

    def reset(self):
        """Abandon the attempt from any step, cancelling an in-flight call."""
        self._attempt += 1
        if self._inflight is not None and not self._inflight.done():
            logger.info(f"[Login] reset while {self.step.value}, cancelling in-flight call")
            self._inflight.cancel()
        self._inflight = None
        self.session.reset()

    # --- Internals ---

    async def _call(self, coro):
        attempt = self._attempt
        task = asyncio.ensure_future(coro)
        self._inflight = task
        try:
            result = await task
        except asyncio.CancelledError:
            if attempt != self._attempt:
                raise _Abandoned() from None
            raise
        except LoginFlowError:
            if attempt != self._attempt:
                raise _Abandoned() from None
            raise
        except Exception as e:
            if attempt != self._attempt:
                raise _Abandoned() from None
            logger.exception(f"[Login] collaborator call crashed: {type(e).__name__}")
            raise ServiceError(MSG_SERVICE_ERROR) from e
        finally:
            if self._inflight is task:
                self._inflight = None

        # reset() may land after the call finished but before this coroutine resumed
        if attempt != self._attempt:
            logger.info("[Login] discarding result of an abandoned attempt")
            raise _Abandoned()
        return result

    async def _apply_lookup(self, outcome, subject: str) -> LoginStep:
        if isinstance(outcome, DirectSuccess):
            return await self._hand_off(subject)

        if isinstance(outcome, ChallengeIssued):
            images = tuple(
                ChallengeImage(path=path, label=label)
                for path, label in zip(outcome.img_list, outcome.img_name)
            )
            self.session.challenge = ChallengeSet(subject_id=subject, images=images)
            self.session.selected = []
            self.session.step = LoginStep.CHALLENGE_PRESENTED
            self.session.last_error = None
            logger.info(f"[Login] challenge presented for {subject!r}: {len(images)} pictures")
            return self.step

        if isinstance(outcome, LookupRejected):
            return self._back_to_idle(ServiceError(outcome.message))

        return self._back_to_idle(ServiceError(MSG_SERVICE_ERROR))

    async def _hand_off(self, username: str) -> LoginStep:
        grant = SessionGrant(username=username, via=self.session.via, redirect_to=self.redirect_to)
        self.session.clear_challenge()
        self.session.grant = grant
        self.session.step = LoginStep.VERIFIED
        self.session.last_error = None
        logger.info(f"[Login] {username!r} verified via {grant.via.value}, redirect to {grant.redirect_to}")

        if self.on_verified is not None:
            try:
                result = self.on_verified(grant)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.exception(f"[Login] session hand-off failed: {type(e).__name__}")
                self.session.last_error = e
        return self.step

    def _begin(self, step: LoginStep, via: EntryPath | None):
        self.session.step = step
        self.session.via = via
        self.session.error_message = None
        self.session.last_error = None

    def _back_to_idle(self, error: LoginFlowError) -> LoginStep:
        self.session.reset()
        return self._record(error)

    def _fail(self, error: ValidationError) -> LoginStep:
        logger.info(f"[Login] rejected input while {self.step.value}: {error.message}")
        self.session.error_message = error.message
        self.session.last_error = error
        return self.step

    def _record(self, error: LoginFlowError) -> LoginStep:
        logger.warning(f"[Login] {type(error).__name__} -> {self.step.value}: {error.message}")
        self.session.error_message = error.message
        self.session.last_error = error
        return self.step

    def _reject_if_busy(self, operation: str) -> bool:
        if self.step not in BUSY_STEPS:
            return False
        logger.warning(f"[Login] {operation} ignored, call already in flight ({self.step.value})")
        self.session.last_error = ValidationError(f"{operation} ignored while {self.step.value}")
        return True
