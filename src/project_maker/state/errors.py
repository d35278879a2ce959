"""Exceptions raised by the Project Maker stores."""


class StoreError(Exception):
    """Base exception for store-level errors."""
    pass


class FeatureNotFoundError(StoreError, KeyError):
    """Raised when an operation references an unknown feature id."""

    def __init__(self, feature_id: str):
        super().__init__(f"Feature not found: {feature_id}")
        self.feature_id = feature_id

    def __str__(self) -> str:
        return self.args[0]


class ProjectNotFoundError(StoreError, KeyError):
    """Raised when an operation references an unknown project id."""

    def __init__(self, project_id: str):
        super().__init__(f"Project not found: {project_id}")
        self.project_id = project_id

    def __str__(self) -> str:
        return self.args[0]


class InvalidTransitionError(StoreError, ValueError):
    """Raised for an automation status change the state machine forbids."""
    pass
