"""Error taxonomy for reconciliation passes.

A request that vanished is not an error (the request store returns ``None``),
and a resource that is still being provisioned is reported with the
:class:`~cloud_resource_operator.models.Pending` result rather than an
exception.
"""

from __future__ import annotations


class OperatorError(Exception):
    """Base class for all errors raised by the operator core."""


class ConfigurationError(OperatorError):
    """Invalid or missing configuration; requires an operator or config fix."""


class StrategyNotFoundError(ConfigurationError):
    """No strategy configured for the requested resource kind or tier."""

    def __init__(self, resource_type: str, tier: str | None = None, detail: str | None = None):
        self.resource_type = resource_type
        self.tier = tier
        if detail is None:
            if tier is None:
                detail = f"no strategy configuration found for resource type {resource_type}"
            else:
                detail = f"no strategy configuration found for tier {tier} of resource type {resource_type}"
        super().__init__(detail)


class MalformedStrategyError(ConfigurationError):
    """A strategy payload exists but cannot be parsed."""


class UnsupportedStrategyError(ConfigurationError):
    """No registered provider supports the resolved deployment strategy."""


class ExternalCallError(OperatorError):
    """A call to an external system failed; retried by redelivery."""


class PollTimeoutError(ExternalCallError):
    """A bounded poll reached its ceiling without success."""


class CredentialsError(ExternalCallError):
    """Credentials for the external provider API could not be issued."""


class ReconcileCancelledError(ExternalCallError):
    """The pass was cancelled or ran past its deadline."""


class InvariantViolationError(OperatorError):
    """A collaborator returned a result that cannot be acted on."""
