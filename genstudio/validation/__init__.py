"""Input validation and staging utilities."""

from .inputs import (
    InputPreparer,
    PreviewRegistry,
    guess_content_type,
    is_super_fan,
    validate_character_name,
    validate_story_title,
)

__all__ = [
    "InputPreparer",
    "PreviewRegistry",
    "guess_content_type",
    "is_super_fan",
    "validate_character_name",
    "validate_story_title",
]
