"""Exception types raised by the ecrflow engine."""

from __future__ import annotations


class EcrflowError(Exception):
    """Base class for ecrflow errors."""


class InvalidInputError(EcrflowError, TypeError):
    """An action was handed something other than a subject record."""


class UnrecoverablePersistenceError(EcrflowError, RuntimeError):
    """Execution state could not be serialized or deserialized."""


class InvalidTransitionError(EcrflowError, RuntimeError):
    """A job status change would move an action backwards."""


class WorkflowDefinitionError(EcrflowError, ValueError):
    """The configured action graph is malformed."""


class SubjectNotFoundError(EcrflowError, LookupError):
    """No subject record exists for the requested id."""


class ConfigurationError(EcrflowError, ValueError):
    """The configured backends cannot work together."""
