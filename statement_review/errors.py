"""
Statement review error types.

Data-quality problems in a statement never raise; these exceptions cover
invalid rule configuration and failing collaborators.
"""


class ReviewError(Exception):
    """Base class for statement review errors."""


class RuleConfigurationError(ReviewError):
    """Raised when a rule set or threshold is invalid."""


class CollaboratorError(ReviewError):
    """Raised when an external collaborator call fails."""


class PersistenceError(CollaboratorError):
    """Raised when the report store cannot be read or written."""


class NewsFeedError(CollaboratorError):
    """Raised when the news feed cannot be fetched or decoded."""
