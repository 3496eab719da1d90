"""Plan engine error types.

Error taxonomy for base plan generation:
- ParseError: model text could not be recovered into JSON
- StructuralError: plan is missing required days or sections (no in-attempt retry)
- GenerationError: Stage 1 (raw generation) failed for an attempt
- VerificationError: Stage 2 (verify and fix) failed for an attempt

Generation and verification errors carry the stage, attempt number and the
issue list so the calling layer can present an actionable retry.
"""

from enum import StrEnum


class PlanEngineError(Exception):
    """Base exception for plan engine errors."""

    pass


class ParseError(PlanEngineError):
    """Raised when model output cannot be parsed or recovered into JSON.

    Attributes:
        head: First characters of the offending text
        tail: Last characters of the offending text
    """

    def __init__(self, message: str, text: str, snippet_chars: int = 200):
        self.head = text[:snippet_chars]
        self.tail = text[-snippet_chars:] if len(text) > snippet_chars else ""
        super().__init__(message)


class StructuralError(PlanEngineError):
    """Raised when a plan is too damaged to be fixed (e.g. missing weekdays).

    Not retried within an attempt; the outer pipeline may retry from scratch.
    """

    def __init__(self, message: str, issues: list[str]):
        self.issues = issues
        super().__init__(message)


class PipelineStage(StrEnum):
    GENERATION = "generation"
    VERIFICATION = "verification"
    VALIDATION = "validation"


class PlanGenerationError(PlanEngineError):
    """Raised when a pipeline stage fails.

    Attributes:
        stage: Pipeline stage that failed
        attempt: 1-based attempt number
        issues: Issues found (may be empty)
    """

    def __init__(
        self,
        message: str,
        stage: PipelineStage,
        attempt: int | None = None,
        issues: list[str] | None = None,
    ):
        self.stage = stage
        self.attempt = attempt
        self.issues = issues or []
        super().__init__(message)

    def __str__(self) -> str:
        base = super().__str__()
        if self.attempt is None:
            return f"[{self.stage}] {base}"
        return f"[{self.stage} attempt {self.attempt}] {base}"


class GenerationError(PlanGenerationError):
    """Raised when Stage 1 does not produce a usable raw plan."""

    def __init__(self, message: str, attempt: int | None = None, issues: list[str] | None = None):
        super().__init__(message, PipelineStage.GENERATION, attempt, issues)


class VerificationError(PlanGenerationError):
    """Raised when Stage 2 cannot verify or fix the raw plan."""

    def __init__(self, message: str, attempt: int | None = None, issues: list[str] | None = None):
        super().__init__(message, PipelineStage.VERIFICATION, attempt, issues)
