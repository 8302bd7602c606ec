"""tagwatch: container image update detection for registry-hosted images."""


class TagwatchError(Exception):
    """Base class for all tagwatch errors."""
