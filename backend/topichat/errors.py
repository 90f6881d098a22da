"""
Typed errors raised across the store, curator and HTTP layers
"""


class TopichatError(Exception):
    """Base class for application errors"""


class StoreError(TopichatError):
    """A read or write against the entity store failed"""


class NotFoundError(StoreError):
    """The requested row does not exist"""


class PermissionDeniedError(TopichatError):
    """The viewer may not perform this operation"""


class GenerationError(TopichatError):
    """The generative text service failed or is not configured"""


class ConfigurationError(TopichatError):
    """A required setting is missing"""


class ConflictError(TopichatError):
    """The change collides with existing data, such as a taken nickname"""
