"""Result normalization and persistence."""

from .normalize import image_ref, normalize_scene, normalize_selfie, normalize_story
from .persister import ResultPersister

__all__ = [
    "ResultPersister",
    "image_ref",
    "normalize_scene",
    "normalize_selfie",
    "normalize_story",
]
