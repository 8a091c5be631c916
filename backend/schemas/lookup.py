"""Normalized collaborator answers.

Loose response shapes are parsed into ``schemas.messages`` models first and
then folded into one of these variants by ``processing.normalize``. The
controller only ever sees the variants below.
"""

from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field


class DirectSuccess(BaseModel):
    kind: Literal["direct_success"] = "direct_success"
    username: str | None = None


class ChallengeIssued(BaseModel):
    kind: Literal["challenge"] = "challenge"
    username: str | None = None
    img_list: list[str]
    img_name: list[str]


class LookupRejected(BaseModel):
    kind: Literal["rejected"] = "rejected"
    message: str


LookupOutcome = Annotated[
    Union[DirectSuccess, ChallengeIssued, LookupRejected],
    Field(discriminator="kind"),
]


class VerificationResult(BaseModel):
    verdict: bool
    error_reason: str | None = None
