from automation.config import AutomationConfig, BrowserEngine, ContextMode
from automation.connection import AutomationConnection
from automation.factory import AutomationConnectionFactory

__all__ = [
    "AutomationConfig",
    "AutomationConnection",
    "AutomationConnectionFactory",
    "BrowserEngine",
    "ContextMode",
]
