"""Detail-link discovery for listing sources."""

from .links import LinkDiscoverer

__all__ = ["LinkDiscoverer"]
