from typing import Dict, Optional


class DigestError(Exception):
    """
    Base class for every failure that terminates a digest run.
    The pipeline fills in `stage` and `counts` before re-raising so the
    operational log line carries where the run stopped and how far it got.
    """

    def __init__(self, message: str, stage: Optional[str] = None, counts: Optional[Dict[str, int]] = None):
        super().__init__(message)
        self.message = message
        self.stage = stage
        self.counts = dict(counts or {})

    def add_context(self, stage: str, counts: Dict[str, int]) -> "DigestError":
        if self.stage is None:
            self.stage = stage
        self.counts = {**counts, **self.counts}
        return self

    def __str__(self):
        text = self.message
        if self.stage:
            text = f"[{self.stage}] {text}"
        if self.counts:
            progress = ", ".join(f"{name}={count}" for name, count in self.counts.items())
            text = f"{text} (counts: {progress})"
        return text


class ConfigurationError(DigestError):
    pass


class FetchError(DigestError):
    """Both the direct request and the browser fallback failed for a URL."""

    def __init__(self, url: str, message: str, **kwargs):
        super().__init__(f"{message}: {url}", **kwargs)
        self.url = url


class ParseError(DigestError):
    """An AI response did not have the expected shape."""


class ExternalServiceError(DigestError):
    """The search API or the AI model kept failing after all retries."""

    def __init__(self, message: str, service: str = "ai", **kwargs):
        super().__init__(message, **kwargs)
        self.service = service


class InsufficientResultsError(DigestError):
    def __init__(self, found: int, minimum: int, **kwargs):
        super().__init__(f"Not enough articles: {found} found, {minimum} required", **kwargs)
        self.found = found
        self.minimum = minimum
