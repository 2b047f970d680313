# workflow_testlab/exceptions.py
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .models import PayloadValidation


class TestLabError(Exception):
    """Base error for the workflow test lab."""

    # keep pytest from collecting this as a test class
    __test__ = False


class PayloadValidationError(TestLabError):
    """Raised when a custom payload fails validation; the run is never started."""

    def __init__(self, validation: "PayloadValidation"):
        lines = "; ".join(f"line {e.line}: {e.message}" for e in validation.errors)
        super().__init__(f"invalid payload: {lines}")
        self.validation = validation


class ConditionConfigError(TestLabError):
    """Raised in strict mode when a condition node has no recognizable predicate."""


class CollaboratorError(TestLabError):
    """An external collaborator call failed."""


class CollaboratorUnavailable(CollaboratorError):
    """No real collaborator is configured for this call."""


class UnknownScenarioError(TestLabError, KeyError):
    pass
