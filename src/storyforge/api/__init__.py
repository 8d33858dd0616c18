"""HTTP shell for the storyforge authoring core."""

from .app import create_app

__all__ = ["create_app"]
