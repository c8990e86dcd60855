class SceneError(ValueError):
    """Raised while building a scene from invalid parameters."""


class SingularMatrixError(SceneError):
    """Raised when a transform that has to be inverted is singular."""


class UnsupportedOperationError(RuntimeError):
    """Raised when an object is asked for something its contract does not offer."""
