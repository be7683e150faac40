"""
Automation backend options.

Context policy:
  ISOLATED (default): one browser process, a fresh BrowserContext per session.
  SHARED: every session drives the same context and page. Cookies,
          storage and navigation leak between sessions and commands
          are forwarded one at a time. Only enable it on purpose,
          e.g. to reuse a logged-in persistent profile.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class BrowserEngine(str, Enum):
    CHROMIUM = "chromium"
    CHROME = "chrome"
    MSEDGE = "msedge"
    FIREFOX = "firefox"
    WEBKIT = "webkit"

    @property
    def browser_type(self) -> str:
        """Playwright browser type name (`chrome`/`msedge` are Chromium channels)."""
        if self in (BrowserEngine.CHROME, BrowserEngine.MSEDGE):
            return "chromium"
        return self.value

    @property
    def channel(self) -> Optional[str]:
        if self in (BrowserEngine.CHROME, BrowserEngine.MSEDGE):
            return self.value
        return None


class ContextMode(str, Enum):
    ISOLATED = "isolated"
    SHARED = "shared"


# Chromium flags for running inside containers without a user namespace
NO_SANDBOX_ARGS = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
]

DEFAULT_VIEWPORT = {"width": 1280, "height": 720}


@dataclass(frozen=True)
class AutomationConfig:
    browser: BrowserEngine = BrowserEngine.CHROMIUM
    headless: bool = True
    sandbox: bool = False
    user_data_dir: Optional[str] = None
    context_mode: ContextMode = ContextMode.ISOLATED
    launch_timeout: float = 30.0

    @property
    def shared(self) -> bool:
        return self.context_mode is ContextMode.SHARED

    def launch_options(self) -> dict:
        options = {
            "headless": self.headless,
            "timeout": self.launch_timeout * 1000,
        }
        if self.browser.channel:
            options["channel"] = self.browser.channel
        if not self.sandbox and self.browser.browser_type == "chromium":
            options["args"] = list(NO_SANDBOX_ARGS)
        return options
