"""
Error taxonomy for tree generation.

Internal code raises these; the request boundary in generator.py turns
them into GenerationResult failures.
"""


class SigmaTreeError(Exception):
    """Base class for all sigmatree errors."""


class CapabilityError(SigmaTreeError):
    """A required hash or random-generation primitive is unavailable."""


class ConfigurationError(SigmaTreeError, ValueError):
    """Invalid generation parameters."""


class TreeShapeError(ConfigurationError):
    """A layer does not have the size a perfect binary tree requires."""


class StorageError(SigmaTreeError):
    """Layer files or the storage root could not be written or moved."""


class LeafGenerationError(SigmaTreeError):
    """A worker failed while generating leaf hashes."""
