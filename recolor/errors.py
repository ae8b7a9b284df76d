"""Exception hierarchy of the recoloring engine."""


class RecolorError(Exception):
    """Base class for every failure raised by the engine."""


class InvalidArgumentError(RecolorError, ValueError):
    """Non-positive dimensions, frame size mismatch or out-of-range color."""


class DimensionMismatchError(RecolorError, ValueError):
    """Requested frame does not fit the configured scratch buffers / score grid."""


class ClassifierError(RecolorError, RuntimeError):
    """Classifier unavailable or produced unusable scores."""
