"""
File Module - Local naming of transferred resources
"""

from .naming import safe_name, resolve_resource

__all__ = [
    'safe_name',
    'resolve_resource',
]
