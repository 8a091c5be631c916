from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator


# --- Collaborator requests ---

class LookupByNameRequest(BaseModel):
    inputUsername: str | None = None


class LookupByQrRequest(BaseModel):
    qr_data: str | None = None


class VerifyRequest(BaseModel):
    username: str | None = None
    images: list[str] | None = None  # labels, ascending index order


# --- Collaborator responses ---

class LookupResponse(BaseModel):
    """Raw identity lookup answer. The collaborator is loose about field names."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    status: str | None = None
    password: bool | int | str | None = None
    username: str | None = None
    error: str | None = None
    img_list: list[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("img_list", "imgList", "images"),
    )
    img_name: list[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("img_name", "imgName", "img_names"),
    )

    @field_validator("img_list", "img_name", mode="before")
    @classmethod
    def _none_as_empty(cls, value):
        # Some answers send null instead of leaving the list out
        return [] if value is None else value


class VerifyResponse(BaseModel):
    model_config = ConfigDict(extra="ignore")

    password: bool | int | str | None = None
    error: str | None = None


class ErrorResponse(BaseModel):
    error: str


# --- WebSocket driver ---

class ImageEntry(BaseModel):
    index: int
    path: str
    label: str


class LoginStateMessage(BaseModel):
    type: str = "login_state"
    step: str
    via: str | None = None
    error: str | None = None
    images: list[ImageEntry] | None = None
    selected: list[int] = Field(default_factory=list)
    redirect_to: str | None = None


class ErrorMessage(BaseModel):
    type: str = "error"
    message: str


class LoginCommand(BaseModel):
    model_config = ConfigDict(extra="ignore")

    type: str
    username: str | None = None
    qr_data: str | None = None
    index: int | None = None
