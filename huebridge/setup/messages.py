"""
Setup messages and actions.

Messages come from the operator (through the host or the CLI), actions
are what the setup flow asks for next.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Union


# ============================================================================
# Inbound messages
# ============================================================================

@dataclass
class SetupRequest:
    """Start (or restart) setup."""
    reconfigure: bool = False
    manual_address: Optional[str] = None


@dataclass
class UserDataResponse:
    """Values entered by the operator for a RequestUserInput."""
    values: Dict[str, str] = field(default_factory=dict)


@dataclass
class UserConfirmationResponse:
    """Answer to a RequestUserConfirmation."""
    confirm: bool


@dataclass
class AbortSetup:
    """Operator or host cancelled setup."""
    error: Optional[str] = None


SetupMessage = Union[SetupRequest, UserDataResponse, UserConfirmationResponse, AbortSetup]


# ============================================================================
# Outbound actions
# ============================================================================

class SetupErrorCode(str, Enum):
    NOT_FOUND = "not_found"
    CONNECTION_REFUSED = "connection_refused"
    AUTHORIZATION_ERROR = "authorization_error"
    TIMEOUT = "timeout"
    USER_ABORTED = "user_aborted"
    OTHER = "other"


@dataclass
class InputField:
    """One field of a RequestUserInput."""
    id: str
    label: str
    kind: str = "dropdown"  # dropdown, label
    items: List[Dict[str, Any]] = field(default_factory=list)
    value: Optional[str] = None


@dataclass
class RequestUserInput:
    title: str
    fields: List[InputField] = field(default_factory=list)


@dataclass
class RequestUserConfirmation:
    title: str
    message: str
    header: Optional[str] = None


@dataclass
class SetupComplete:
    pass


@dataclass
class SetupError:
    error: str
    code: SetupErrorCode = SetupErrorCode.OTHER


SetupAction = Union[RequestUserInput, RequestUserConfirmation, SetupComplete, SetupError]
