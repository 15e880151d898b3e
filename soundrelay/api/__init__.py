"""
Outbound API Layer.

This package handles communication with HTTP services the relay depends on.
"""

from .link_resolver import LinkResolver, pick_soundcloud_link

__all__ = ["LinkResolver", "pick_soundcloud_link"]
