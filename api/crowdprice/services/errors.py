class RepositoryError(Exception):
    """Base repository error."""


class RepositoryUnavailableError(RepositoryError):
    """Raised when the database is unavailable or not configured."""


class RepositoryNotFoundError(RepositoryError):
    """Raised when the requested entity does not exist."""


class RepositoryConflictError(RepositoryError):
    """Raised when an operation violates state transition rules."""


class RepositoryForbiddenError(RepositoryError):
    """Raised when an operation is not permitted for the actor."""


class RepositoryValidationError(RepositoryError):
    """Raised when payload validation fails before persistence."""


class DuplicateSubmissionError(RepositoryConflictError):
    """Raised when a submitter already reported the product inside the duplicate window."""


class ObservationNotFoundError(RepositoryNotFoundError):
    """Raised when a price observation id is unknown."""


class SelfReviewError(RepositoryForbiddenError):
    """Raised when a reviewer attempts to decide on their own submission."""


class AlreadyReviewedError(RepositoryConflictError):
    """Raised when the observation is no longer pending, including lost review races."""


class InvalidReviewError(RepositoryValidationError):
    """Raised when a review decision is missing required input."""
