# genstudio/persistence/persister.py
"""
Result persister.

Commits a successful story to the content store as draft or published. A
failed save never discards the result: the caller keeps it and may retry.
"""

import logging
from typing import Any

import httpx

from genstudio.client.http import StudioApiClient
from genstudio.config.schema import StoryConfig
from genstudio.errors import PersistenceFailure, ValidationError
from genstudio.models.payloads import (
    ArtifactMetadata,
    SavedArtifact,
    SaveStoryRequest,
    Visibility,
)
from genstudio.validation.inputs import validate_story_title

from .normalize import normalize_story

logger = logging.getLogger(__name__)


class ResultPersister:
    """Normalizes a generated story and saves it with the chosen visibility."""

    def __init__(self, api: StudioApiClient, config: StoryConfig, save_timeout: float = 30.0) -> None:
        """
        Initialize the persister.

        Args:
            api: Backend API client
            config: Story settings (save endpoint)
            save_timeout: Read timeout in seconds for the save call
        """
        self._api = api
        self._config = config
        self._save_timeout = save_timeout

    def build_request(
        self,
        payload: dict[str, Any],
        visibility: Visibility,
        metadata: ArtifactMetadata | None = None,
    ) -> SaveStoryRequest:
        """
        Build the save body from a generation payload.

        Raises:
            ValidationError: If the (possibly overridden) title is invalid
        """
        metadata = metadata or ArtifactMetadata()
        story = normalize_story(payload)

        title = metadata.title if metadata.title is not None else story.title
        title_error = validate_story_title(title)
        if title_error:
            raise ValidationError.from_fields({"title": title_error})

        return SaveStoryRequest(
            title=title.strip(),
            content=story.content,
            genre=story.genre,
            mood=story.mood,
            length=story.length,
            character_name=story.character_name,
            character_traits=story.character_traits,
            character_background=story.character_background,
            cover_image=story.cover_image,
            scenes=story.scenes,
            tags=list(metadata.tags),
            status=visibility.status,
            is_public=visibility.is_public,
        )

    async def save(
        self,
        payload: dict[str, Any],
        visibility: Visibility,
        metadata: ArtifactMetadata | None = None,
    ) -> SavedArtifact:
        """
        Save a generated story.

        Args:
            payload: The job's unwrapped generation result
            visibility: Draft/published and public/private
            metadata: Optional title override and tags

        Returns:
            SavedArtifact with the identifier assigned by the backend

        Raises:
            ValidationError: If the title fails local checks (nothing is sent)
            PersistenceFailure: If the save call fails for any reason
        """
        request = self.build_request(payload, visibility, metadata)
        logger.info(f"Saving story '{request.title}' as {visibility.status}")

        try:
            response = await self._api.post_json(
                self._config.save_path,
                request.model_dump(),
                timeout=self._save_timeout,
            )
        except httpx.TransportError as e:
            logger.warning(f"Save request failed: {type(e).__name__}: {e}")
            raise PersistenceFailure() from e

        try:
            body = response.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}

        if response.is_error or body.get("success") is False:
            message = body.get("message") or body.get("error")
            logger.warning(f"Save rejected (HTTP {response.status_code}): {message}")
            raise PersistenceFailure(message=message, status_code=response.status_code)

        entity = body.get("data") if isinstance(body.get("data"), dict) else body
        if entity.get("id") is None:
            raise PersistenceFailure(
                message="The story service did not confirm the save. Please try again.",
                status_code=response.status_code,
            )

        artifact = SavedArtifact(
            id=str(entity["id"]),
            title=entity.get("title") or request.title,
            status=entity.get("status") or request.status,
            is_public=entity.get("is_public", request.is_public),
            tags=entity.get("tags") or request.tags,
            raw=entity,
        )
        logger.info(f"Story saved (id={artifact.id}, status={artifact.status})")
        return artifact
