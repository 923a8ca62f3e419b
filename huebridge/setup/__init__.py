"""
Hub setup.

Pairing state machine plus the messages and actions it exchanges with
the operator.
"""

from .flow import (
    Aborted,
    AwaitingButtonPress,
    Completed,
    ConfigurationMode,
    DeviceChoice,
    Discover,
    Error,
    Init,
    SetupFlow,
    SetupState,
)
from .messages import (
    AbortSetup,
    InputField,
    RequestUserConfirmation,
    RequestUserInput,
    SetupAction,
    SetupComplete,
    SetupError,
    SetupErrorCode,
    SetupMessage,
    SetupRequest,
    UserConfirmationResponse,
    UserDataResponse,
)

__all__ = [
    # Flow
    "SetupFlow",
    "SetupState",
    "Init",
    "Discover",
    "DeviceChoice",
    "AwaitingButtonPress",
    "ConfigurationMode",
    "Completed",
    "Aborted",
    "Error",
    # Messages
    "SetupMessage",
    "SetupRequest",
    "UserDataResponse",
    "UserConfirmationResponse",
    "AbortSetup",
    # Actions
    "SetupAction",
    "InputField",
    "RequestUserInput",
    "RequestUserConfirmation",
    "SetupComplete",
    "SetupError",
    "SetupErrorCode",
]
