"""Domain errors."""


class CurationError(Exception):
    """Base error for the curation pipeline."""


class NotFoundError(CurationError):
    """Requested cycle, post or article does not exist."""


class InvalidCriteriaError(CurationError):
    """Criteria configuration cannot be used for rating."""


class ConsistencyError(CurationError):
    """Action would break an ordering or lifecycle invariant."""


class PositionError(ConsistencyError):
    """Article or target position is outside the current ordering."""


class SelectionExistsError(ConsistencyError):
    """Cycle already has selected articles."""


class CycleStateError(ConsistencyError):
    """Action is not allowed in the cycle's current status."""
