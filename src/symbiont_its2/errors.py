# ==================================== EXCEPTIONS ==================================== #

class MalformedInputError(ValueError):
    """Raised when an input table violates its schema (missing or duplicated
    key columns, non-numeric counts, unlabelled taxa). Fatal for a run."""
    pass


class EmptyDatasetError(ValueError):
    """Raised when an analysis needs more samples than filtering left over."""
    pass


class InsufficientSampleSizeError(ValueError):
    """Raised when a group in a statistical comparison has too few members."""
    pass


class LowConfidenceOrdinationWarning(UserWarning):
    """Emitted when an ordination finishes with stress above the threshold."""
    pass
