"""
Broker error taxonomy.

Every error carries the HTTP status the listener answers with, so handlers
in main.py can translate any BrokerError into a structured `{"error": ...}`
payload without knowing where it came from.
"""

from typing import Optional


class BrokerError(Exception):
    status_code = 500

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message or self.__class__.__name__


class ConfigError(BrokerError):
    """Invalid configuration. Raised before the listener binds."""


class AcquisitionError(BrokerError):
    """The automation backend could not hand out a connection."""


class SessionNotFoundError(BrokerError):
    status_code = 400

    def __init__(self, session_id: Optional[str] = None):
        super().__init__("no active session for supplied id")
        self.session_id = session_id


class DuplicateSessionError(BrokerError):
    def __init__(self, session_id: str):
        super().__init__(f"session id already registered: {session_id}")
        self.session_id = session_id


class ConnectionLostError(BrokerError):
    """The page or browser context behind a connection is gone."""


class InvalidPayloadError(BrokerError):
    status_code = 400


class SessionBusyError(BrokerError):
    """The session already holds as many pending commands as it accepts."""

    status_code = 429

    def __init__(self, session_id: str):
        super().__init__("too many pending commands for session")
        self.session_id = session_id
