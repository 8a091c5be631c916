from enum import Enum
from dataclasses import dataclass, field

from config import SELECTION_SIZE


class LoginStep(str, Enum):
    IDLE = "IDLE"
    AWAITING_CHALLENGE = "AWAITING_CHALLENGE"
    CHALLENGE_PRESENTED = "CHALLENGE_PRESENTED"
    VERIFYING = "VERIFYING"
    VERIFIED = "VERIFIED"
    REJECTED = "REJECTED"


class EntryPath(str, Enum):
    NAME = "name"
    QR = "qr"


# Steps where the image grid is on screen and accepts picks
CHALLENGE_STEPS = (LoginStep.CHALLENGE_PRESENTED, LoginStep.REJECTED)

# Steps with a collaborator call in flight
BUSY_STEPS = (LoginStep.AWAITING_CHALLENGE, LoginStep.VERIFYING)


@dataclass(frozen=True)
class ChallengeImage:
    path: str
    label: str


@dataclass(frozen=True)
class ChallengeSet:
    subject_id: str
    images: tuple[ChallengeImage, ...]

    @property
    def labels(self) -> list[str]:
        return [image.label for image in self.images]

    def __len__(self) -> int:
        return len(self.images)


@dataclass(frozen=True)
class SessionGrant:
    username: str
    via: EntryPath
    redirect_to: str


@dataclass
class LoginSession:
    step: LoginStep = LoginStep.IDLE
    via: EntryPath | None = None

    # Challenge
    challenge: ChallengeSet | None = None
    selected: list[int] = field(default_factory=list)
    selection_size: int = field(default_factory=lambda: SELECTION_SIZE)

    # Surfaced to the UI
    error_message: str | None = None
    last_error: Exception | None = None

    # Result
    grant: SessionGrant | None = None

    def clear_challenge(self):
        self.challenge = None
        self.selected = []

    def reset(self):
        self.step = LoginStep.IDLE
        self.via = None
        self.clear_challenge()
        self.error_message = None
        self.last_error = None
        self.grant = None
