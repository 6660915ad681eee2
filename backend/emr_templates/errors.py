"""Exceptions raised by the template builder core."""

from typing import List, Optional


class TemplateError(Exception):
    """Base class for template builder errors."""


class TemplateValidationError(TemplateError):
    """User-correctable problems found before a save is attempted."""

    def __init__(self, errors: List[str]):
        self.errors = list(errors)
        super().__init__("; ".join(self.errors) or "Invalid template")


class LifecyclePolicyError(TemplateError):
    """A version lifecycle transition that the policy does not allow."""


class SaveCancelled(TemplateError):
    """A save was aborted through its cancel token."""

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or "Save cancelled")
