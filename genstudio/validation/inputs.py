# genstudio/validation/inputs.py
"""
Input validation and staging.

Validates selfie files and story prompts before anything touches the network,
and hands out local preview handles that must be revoked when superseded.
"""

import logging
import mimetypes
from pathlib import Path
from uuid import uuid4

from genstudio.config.schema import SelfieConfig
from genstudio.errors import ValidationError
from genstudio.models.jobs import SelfieInput
from genstudio.models.payloads import StoryRequest

logger = logging.getLogger(__name__)

# mimetypes does not know HEIC on every platform
_EXTRA_TYPES = {".heic": "image/heic", ".heif": "image/heic", ".jpg": "image/jpeg"}


class PreviewRegistry:
    """
    Local preview handles for staged images.

    A handle is available immediately, with no network round-trip. Every
    handle must be revoked once its job is discarded or its input replaced.
    """

    SCHEME = "preview://"

    def __init__(self) -> None:
        self._previews: dict[str, bytes] = {}

    def create(self, data: bytes) -> str:
        """Register bytes and return a new preview handle."""
        handle = f"{self.SCHEME}{uuid4().hex}"
        self._previews[handle] = data
        logger.debug(f"Created preview {handle} ({len(data)} bytes)")
        return handle

    def resolve(self, handle: str) -> bytes | None:
        """Bytes behind a live handle, or None once revoked."""
        return self._previews.get(handle)

    def revoke(self, handle: str | None) -> None:
        """Release a handle. Unknown or already-revoked handles are ignored."""
        if handle and self._previews.pop(handle, None) is not None:
            logger.debug(f"Revoked preview {handle}")

    @property
    def active(self) -> frozenset[str]:
        """Handles that have not been revoked."""
        return frozenset(self._previews)


def guess_content_type(filename: str) -> str | None:
    """Guess an image content type from a file name."""
    suffix = Path(filename).suffix.lower()
    if suffix in _EXTRA_TYPES:
        return _EXTRA_TYPES[suffix]
    content_type, _ = mimetypes.guess_type(filename)
    return content_type


def validate_character_name(name: str | None) -> str | None:
    """Return an error message for a bad character name, None if valid."""
    if not name or not name.strip():
        return "Character name is required"
    if len(name.strip()) < 2:
        return "Character name must be at least 2 characters"
    if len(name) > 100:
        return "Character name must be less than 100 characters"
    return None


def validate_story_title(title: str | None) -> str | None:
    """Return an error message for a bad story title, None if valid."""
    if not title or not title.strip():
        return "Title is required"
    if len(title.strip()) < 3:
        return "Title must be at least 3 characters"
    if len(title) > 200:
        return "Title must be less than 200 characters"
    return None


class InputPreparer:
    """Validates and stages user input for a generation job."""

    def __init__(self, config: SelfieConfig, previews: PreviewRegistry) -> None:
        """
        Initialize the preparer.

        Args:
            config: Selfie limits (allow-list, max size)
            previews: Registry that owns preview handles
        """
        self._config = config
        self._previews = previews

    @property
    def previews(self) -> PreviewRegistry:
        return self._previews

    @property
    def max_bytes(self) -> int:
        return self._config.max_size_mb * 1024 * 1024

    def stage_selfie(
        self,
        data: bytes,
        filename: str,
        content_type: str | None = None,
    ) -> SelfieInput:
        """
        Validate a selfie and create its preview handle.

        Args:
            data: Raw image bytes
            filename: Original file name (used to guess the type)
            content_type: Declared content type, if known

        Returns:
            SelfieInput with a live preview handle

        Raises:
            ValidationError: On disallowed type, empty file or oversized file
        """
        content_type = (content_type or guess_content_type(filename) or "").lower()

        if content_type not in self._config.allowed_types:
            raise ValidationError.from_fields(
                {"file": "Please upload a JPG, PNG, WEBP or HEIC image."}
            )
        if not data:
            raise ValidationError.from_fields({"file": "The selected image is empty."})
        if len(data) > self.max_bytes:
            raise ValidationError.from_fields(
                {"file": f"Image must be smaller than {self._config.max_size_mb} MB."}
            )

        preview = self._previews.create(data)
        logger.info(f"Staged selfie {filename} ({content_type}, {len(data)} bytes)")
        return SelfieInput(
            filename=filename,
            content_type=content_type,
            data=data,
            preview=preview,
        )

    def stage_selfie_file(self, path: str | Path) -> SelfieInput:
        """
        Read and stage a selfie from disk.

        Raises:
            ValidationError: If the file is missing or fails validation
        """
        file_path = Path(path)
        if not file_path.is_file():
            raise ValidationError.from_fields({"file": f"File not found: {file_path}"})
        # Reject on size before reading the whole file into memory
        if file_path.stat().st_size > self.max_bytes:
            raise ValidationError.from_fields(
                {"file": f"Image must be smaller than {self._config.max_size_mb} MB."}
            )
        return self.stage_selfie(file_path.read_bytes(), file_path.name)

    def prepare_story(self, request: StoryRequest) -> StoryRequest:
        """
        Validate a story prompt.

        Returns:
            A copy of the request with whitespace trimmed

        Raises:
            ValidationError: If a required field is missing or malformed
        """
        errors: dict[str, str] = {}
        name_error = validate_character_name(request.character_name)
        if name_error:
            errors["character_name"] = name_error
        if errors:
            raise ValidationError.from_fields(errors)

        return request.model_copy(
            update={
                "character_name": request.character_name.strip(),
                "character_traits": [t.strip() for t in request.character_traits if t.strip()],
                "character_background": (
                    request.character_background.strip()
                    if request.character_background
                    else None
                ),
            }
        )

    def release(self, staged: SelfieInput | StoryRequest | None) -> None:
        """Revoke the preview tied to staged input, if any."""
        if isinstance(staged, SelfieInput):
            self._previews.revoke(staged.preview)


def is_super_fan(user: dict | None) -> bool:
    """
    Whether a member profile is entitled to premium (watermark-free) downloads.

    Accepts the backend tier field or a plan name such as "Super Fan".
    """
    if not user:
        return False
    if user.get("membership_tier") == "super_fan":
        return True
    plan_name = user.get("membership_tier") or ""
    membership = user.get("membership")
    if isinstance(membership, dict) and isinstance(membership.get("plan"), dict):
        plan_name = membership["plan"].get("name") or plan_name
    name = str(plan_name).lower()
    return "super fan" in name or "superfan" in name
