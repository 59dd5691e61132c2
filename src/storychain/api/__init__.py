"""Public API surface for HTTP serving and Python-first interfaces."""

from storychain.api.app import create_app
from storychain.api.contracts import StorySettingsPayload
from storychain.api.python_interface import StoryChainClient

__all__ = [
    "StoryChainClient",
    "StorySettingsPayload",
    "create_app",
]
