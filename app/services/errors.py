from __future__ import annotations


class SalaryRequestError(ValueError):
    """Caller-side problem with a salary intelligence request, raised before the pipeline runs."""

    def __init__(self, message: str, *, status_code: int = 400):
        super().__init__(message)
        self.status_code = status_code


class FxUnavailableError(RuntimeError):
    def __init__(self, base: str, quote: str):
        super().__init__(f"No FX rate available for {base}->{quote}")
        self.base = base
        self.quote = quote
