"""Error taxonomy for grade computation.

Every error a grading operation raises on purpose derives from
``GradingError``. The families map onto how a caller reacts:

- ``ValidationError``: the request is malformed; fix the input and retry.
- ``NotFoundError``: a lookup missed; do not retry.
- ``StateConflict``: the store changed underneath the caller; re-read and retry.
- ``LifecycleError``: the requested transition is not allowed from the
  current status.
- ``StudentGradingError``: a single student could not be graded; collected
  into a computation's results rather than raised out of the batch.
- ``Forbidden``: the caller may not manage grades for the offering.
"""

from __future__ import annotations

import typing as t


class GradingError(Exception):
    code: t.ClassVar[str] = "grading_error"

    def __init__(self, message: str, **context: t.Any):
        super().__init__(message)
        self.message = message
        self.context = context

    def __str__(self) -> str:
        return self.message


# Validation


class ValidationError(GradingError):
    code = "validation_error"

    def __init__(self, message: str, *, field: str | None = None, **context: t.Any):
        super().__init__(message, **context)
        self.field = field

    @property
    def details(self) -> list[dict[str, t.Any]]:
        detail: dict[str, t.Any] = {"field": self.field, "message": self.message, "code": self.code}
        return [detail]


class FormulaSyntaxError(ValidationError):
    code = "syntax_error"

    def __init__(self, message: str, *, position: int | None = None, **context: t.Any):
        super().__init__(message, field="expression", position=position, **context)
        self.position = position


class UnknownReference(ValidationError):
    code = "unknown_reference"

    def __init__(self, names: t.Iterable[str]):
        self.names = tuple(sorted(names))
        super().__init__(f"unknown component reference(s): {', '.join(self.names)}", field="expression")


class DivisionByZeroRisk(ValidationError):
    code = "division_by_zero_risk"

    def __init__(self, position: int | None = None):
        super().__init__("expression divides by a constant zero", field="expression", position=position)


class BoundaryGapError(ValidationError):
    code = "boundary_gap"

    def __init__(self, message: str):
        super().__init__(message, field="grade_boundaries")


class WeightConfigurationError(ValidationError):
    code = "weight_configuration"


# Lookup


class NotFoundError(GradingError):
    code = "not_found"


class NoActiveFormula(NotFoundError):
    code = "no_active_formula"


# Concurrency


class StateConflict(GradingError):
    code = "state_conflict"


class ComputationInProgress(StateConflict):
    code = "computation_in_progress"


class ComponentInUse(StateConflict):
    code = "component_in_use"


# Lifecycle


class LifecycleError(GradingError):
    code = "lifecycle_error"


class FinalGradeLocked(LifecycleError):
    code = "final_grade_locked"


class CannotUnpublishLocked(LifecycleError):
    code = "cannot_unpublish_locked"


class MustPublishBeforeLock(LifecycleError):
    code = "must_publish_before_lock"


class CannotOverrideLocked(LifecycleError):
    code = "cannot_override_locked"


class OverridePresent(LifecycleError):
    code = "override_present"


# Per-student


class StudentGradingError(GradingError):
    code = "student_grading_error"


class MissingComponentScore(StudentGradingError):
    code = "missing_component_score"

    def __init__(self, names: t.Iterable[str]):
        self.names = tuple(sorted(names))
        super().__init__(f"missing score for component(s): {', '.join(self.names)}")


class IncompleteGrading(MissingComponentScore):
    code = "incomplete_grading"


class DivisionByZero(StudentGradingError):
    code = "division_by_zero"


class ScoreOutOfRange(StudentGradingError):
    code = "score_out_of_range"


# Access


class Forbidden(GradingError):
    code = "forbidden"

    def __init__(self, message: str = "access denied", **context: t.Any):
        super().__init__(message, **context)
