# genstudio/persistence/normalize.py
"""
Normalization of generation payloads into canonical shapes.

The generation service and the storage service disagree on field naming:
snake_case vs camelCase, bare strings vs {path, previewUrl} objects. This
module is the one place that reconciles them.
"""

from typing import Any

from genstudio.models.payloads import CanonicalScene, CanonicalStory, SelfieResult


def _first(data: dict[str, Any], *keys: str) -> Any:
    """First truthy value among keys, else None."""
    for key in keys:
        value = data.get(key)
        if value:
            return value
    return None


def image_ref(value: Any) -> tuple[str, str]:
    """
    Split an image reference into (storage path, displayable URL).

    Accepts a bare string, or an object with path/previewUrl/url fields.
    """
    if isinstance(value, str):
        value = value.strip()
        return value, value
    if isinstance(value, dict):
        path = value.get("path") or ""
        url = _first(value, "previewUrl", "preview_url", "url") or path
        return path, url
    return "", ""


def normalize_scene(raw: dict[str, Any], index: int = 0) -> CanonicalScene:
    """Normalize one scene; `index` is its zero-based position, used when unnumbered."""
    _, nested_url = image_ref(raw.get("image"))
    image_url = nested_url or _first(raw, "imageUrl", "image_url") or ""

    scene_number = _first(raw, "scene_number", "sceneNumber")
    return CanonicalScene(
        scene_number=int(scene_number) if scene_number is not None else index + 1,
        title=raw.get("title") or "",
        content=raw.get("content") or "",
        image_url=image_url,
        image_prompt=_first(raw, "image_prompt", "imagePrompt") or "",
    )


def normalize_story(payload: dict[str, Any]) -> CanonicalStory:
    """
    Normalize a generated story.

    Args:
        payload: Either the unwrapped {story, scenes, estimated_read_time}
            result or a bare story object

    Returns:
        CanonicalStory
    """
    if isinstance(payload.get("story"), dict):
        story = payload["story"]
        scenes = payload.get("scenes") or story.get("scenes_with_urls") or story.get("scenes") or []
        read_time = payload.get("estimated_read_time") or story.get("estimated_read_time")
    else:
        story = payload
        scenes = story.get("scenes_with_urls") or story.get("scenes") or []
        read_time = story.get("estimated_read_time")

    # Saved cover is the storage path, never the signed preview URL
    cover_obj = story.get("coverImage")
    nested_path, nested_url = image_ref(cover_obj)
    flat_path, flat_url = image_ref(story.get("cover_image"))
    cover_path = nested_path or flat_path
    cover_url = nested_url or story.get("cover_image_url") or flat_url

    traits = _first(story, "character_traits", "characterTraits") or []
    if isinstance(traits, str):
        traits = [t.strip() for t in traits.split(",") if t.strip()]

    return CanonicalStory(
        title=story.get("title") or "",
        content=story.get("content") or "",
        genre=story.get("genre"),
        mood=story.get("mood"),
        length=story.get("length"),
        character_name=_first(story, "character_name", "characterName") or "",
        character_traits=list(traits),
        character_background=_first(story, "character_background", "characterBackground") or "",
        cover_image=cover_path,
        cover_image_url=cover_url,
        scenes=[normalize_scene(s, i) for i, s in enumerate(scenes) if isinstance(s, dict)],
        estimated_read_time=int(read_time) if read_time else None,
    )


def normalize_selfie(data: dict[str, Any]) -> SelfieResult:
    """
    Normalize a generated selfie.

    Raises:
        ValueError: If the payload has no id or no image
    """
    _, nested_url = image_ref(data.get("image"))
    image_url = _first(data, "image_url", "imageUrl") or nested_url
    if data.get("id") is None or not image_url:
        raise ValueError("Selfie result is missing its id or image")

    return SelfieResult(
        id=str(data["id"]),
        image_url=image_url,
        is_watermark_removed=bool(data.get("is_watermark_removed", False)),
        created_at=data.get("created_at"),
        expires_in=data.get("expires_in"),
    )
