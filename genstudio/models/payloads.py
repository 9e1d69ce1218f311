# genstudio/models/payloads.py
"""
Pydantic wire models for generation requests, results and saved artifacts.

All models use extra="ignore" for forward compatibility with backend changes.
"""

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

MAX_TAGS = 5

StoryGenre = Literal[
    "adventure",
    "action",
    "romance",
    "sci-fi",
    "fantasy",
    "mystery",
    "horror",
    "comedy",
    "drama",
]
StoryMood = Literal[
    "epic",
    "lighthearted",
    "dark",
    "inspirational",
    "suspenseful",
    "romantic",
    "humorous",
]
StoryLength = Literal["short", "medium", "long"]
StoryStatus = Literal["draft", "published"]


class StoryPrompt(BaseModel):
    """Structured prompt portion of a story request."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    genre: StoryGenre = "adventure"
    mood: StoryMood = "epic"
    length: StoryLength = "medium"
    theme: str | None = None
    custom_prompt: str | None = Field(default=None, alias="customPrompt")


class StoryRequest(BaseModel):
    """Story generation input, serialized camelCase for the generation endpoint."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    character_name: str = Field(default="", alias="characterName")
    character_traits: list[str] = Field(default_factory=list, alias="characterTraits")
    character_background: str | None = Field(default=None, alias="characterBackground")
    prompt: StoryPrompt = Field(default_factory=StoryPrompt)
    include_images: bool = Field(default=True, alias="includeImages")

    def to_wire(self) -> dict[str, Any]:
        """JSON body for POST /stories/generate."""
        return self.model_dump(by_alias=True, exclude_none=True)


class CanonicalScene(BaseModel):
    """One story scene in the single normalized shape."""

    model_config = ConfigDict(extra="ignore")

    scene_number: int | None = None
    title: str = ""
    content: str = ""
    image_url: str = ""
    image_prompt: str = ""


class CanonicalStory(BaseModel):
    """A generated story in the single normalized shape."""

    model_config = ConfigDict(extra="ignore")

    title: str = ""
    content: str = ""
    genre: str | None = None
    mood: str | None = None
    length: str | None = None
    character_name: str = ""
    character_traits: list[str] = Field(default_factory=list)
    character_background: str = ""
    cover_image: str = Field(default="", description="Storage path of the cover (not a URL)")
    cover_image_url: str = Field(default="", description="Displayable cover URL")
    scenes: list[CanonicalScene] = Field(default_factory=list)
    estimated_read_time: int | None = None


class SelfieResult(BaseModel):
    """A generated selfie composite in the normalized shape."""

    model_config = ConfigDict(extra="ignore")

    id: str
    image_url: str
    is_watermark_removed: bool = False
    created_at: str | None = None
    expires_in: int | None = None


class Visibility(BaseModel):
    """User decision on how a result is persisted."""

    model_config = ConfigDict(extra="ignore")

    status: StoryStatus = "draft"
    is_public: bool = False


class ArtifactMetadata(BaseModel):
    """Transient review-screen fields committed with the artifact."""

    model_config = ConfigDict(extra="ignore")

    title: str | None = Field(default=None, description="Overrides the generated title")
    tags: list[str] = Field(default_factory=list)

    @field_validator("tags")
    @classmethod
    def normalize_tags(cls, tags: list[str]) -> list[str]:
        """Trimmed, lowercased, de-duplicated in order, at most MAX_TAGS."""
        normalized: list[str] = []
        for tag in tags:
            tag = tag.strip().lower()
            if tag and tag not in normalized:
                normalized.append(tag)
        return normalized[:MAX_TAGS]


class SaveStoryRequest(BaseModel):
    """Body for the save/publish endpoint (snake_case)."""

    model_config = ConfigDict(extra="ignore")

    title: str
    content: str
    genre: str | None = None
    mood: str | None = None
    length: str | None = None
    character_name: str = ""
    character_traits: list[str] = Field(default_factory=list)
    character_background: str = ""
    cover_image: str = ""
    scenes: list[CanonicalScene] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)
    status: StoryStatus
    is_public: bool


class SavedArtifact(BaseModel):
    """A persisted result; the backend content store owns it from here on."""

    model_config = ConfigDict(extra="ignore")

    id: str
    title: str
    status: StoryStatus
    is_public: bool
    tags: list[str] = Field(default_factory=list)
    raw: dict[str, Any] = Field(default_factory=dict, description="Entity as returned by the backend")
