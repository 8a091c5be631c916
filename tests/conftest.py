"""Shared fixtures for the login flow test suite."""

import asyncio

import pytest

from processing.controller import CredentialChallengeController
from processing.normalize import normalize_name_lookup, normalize_qr_lookup, normalize_verification
from schemas.messages import LookupResponse, VerifyResponse

LABELS = ["dog", "cat", "rabbit", "bear", "fox", "panda"]


class FakeIdentity:
    """Identity lookup stub. Answers go through the real normalization step."""

    def __init__(self, name_answer=None, qr_answer=None, ok=True):
        self.name_answer = name_answer or {}
        self.qr_answer = qr_answer or {}
        self.ok = ok
        self.calls = []
        self.gate: asyncio.Event | None = None
        self.error: Exception | None = None

    async def _wait(self):
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error

    async def lookup_by_name(self, username):
        self.calls.append(("name", username))
        await self._wait()
        return normalize_name_lookup(LookupResponse.model_validate(self.name_answer), self.ok)

    async def lookup_by_qr(self, payload):
        self.calls.append(("qr", payload))
        await self._wait()
        return normalize_qr_lookup(LookupResponse.model_validate(self.qr_answer), self.ok)


class FakeVerification:
    def __init__(self, answer=None, ok=True):
        self.answer = answer if answer is not None else {"password": True}
        self.ok = ok
        self.calls = []
        self.gate: asyncio.Event | None = None
        self.error: Exception | None = None

    async def verify(self, username, labels):
        self.calls.append((username, list(labels)))
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        return normalize_verification(VerifyResponse.model_validate(self.answer), self.ok)


async def settle():
    """Let spawned tasks run up to their next real suspension point."""
    for _ in range(10):
        await asyncio.sleep(0)


@pytest.fixture
def next_step_answer():
    """Lookup answer carrying the usual six-picture challenge."""
    return {
        "status": "next_step",
        "img_list": [f"/img/{label}.png" for label in LABELS],
        "img_name": list(LABELS),
    }


@pytest.fixture
def identity(next_step_answer):
    return FakeIdentity(name_answer=next_step_answer)


@pytest.fixture
def verification():
    return FakeVerification()


@pytest.fixture
def grants():
    return []


@pytest.fixture
def controller(identity, verification, grants):
    return CredentialChallengeController(identity, verification, on_verified=grants.append)
