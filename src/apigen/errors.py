"""Exception hierarchy for apigen.

Every error raised on purpose derives from ApigenError so the CLI can turn
it into a clean message instead of a traceback.
"""


class ApigenError(Exception):
    """Base class for apigen errors."""


class ConfigError(ApigenError):
    """The resolved configuration is invalid."""

    def __init__(self, problems: list[str]):
        self.problems = problems
        super().__init__("Invalid configuration:\n" + "\n".join(f"  - {p}" for p in problems))


class DetectionError(ApigenError):
    """No supported framework was detected with enough confidence."""

    def __init__(self, message: str, reasons: list[str] | None = None):
        self.reasons = reasons or []
        super().__init__(message)


class ExtractionError(ApigenError):
    """An extractor returned a failed result."""

    def __init__(self, errors: list[str], warnings: list[str] | None = None):
        self.errors = errors
        self.warnings = warnings or []
        super().__init__("\n".join(errors) or "Extraction failed")


class UnsupportedFrameworkError(ApigenError):
    """No extractor is registered for the requested project type."""


class SpecLoadError(ApigenError):
    """An API description document could not be read or parsed."""


class RefResolutionError(ApigenError):
    """A $ref pointer could not be resolved."""

    def __init__(self, ref: str, reason: str = ""):
        self.ref = ref
        message = f"Cannot resolve $ref '{ref}'"
        if reason:
            message += f": {reason}"
        super().__init__(message)
