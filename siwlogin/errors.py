"""
Exceptions raised by the login flow.

Each class maps to one failure category with its own handling policy:
configuration problems stop the process, flow-state and token failures
reject a single callback, provider communication failures degrade or
reject a single request.
"""

from typing import Optional


class AuthFlowError(Exception):
    """Base exception for login flow errors"""
    pass


class ConfigurationError(AuthFlowError):
    """Missing setting or unusable random source; fatal at startup."""
    pass


class FlowStateError(AuthFlowError):
    """
    The callback request does not match the flow stored in the session.

    The message is shown to the user as-is.
    """
    pass


class ProviderCommunicationError(AuthFlowError):
    """
    A call to the identity provider failed.

    Attributes:
        error: OAuth error code returned by the provider, if any
        error_description: Provider supplied description, if any
        status_code: HTTP status of the provider response, if one was received
    """

    def __init__(
        self,
        message: str,
        error: Optional[str] = None,
        error_description: Optional[str] = None,
        status_code: Optional[int] = None,
    ):
        super().__init__(message)
        self.error = error
        self.error_description = error_description
        self.status_code = status_code


class TokenInvalid(AuthFlowError):
    """
    The identity token failed verification.

    The message never says which check failed; the reason is logged instead.
    """

    def __init__(self, message: str = "The id_token could not be verified"):
        super().__init__(message)


__all__ = [
    "AuthFlowError",
    "ConfigurationError",
    "FlowStateError",
    "ProviderCommunicationError",
    "TokenInvalid",
]
