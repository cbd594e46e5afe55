"""Configuration management for test sessions."""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class BrowserType(str, Enum):
    """Browsers Playwright can launch."""
    CHROMIUM = "chromium"
    FIREFOX = "firefox"
    WEBKIT = "webkit"


class Settings(BaseSettings):
    """Settings loaded from ``SERIAL_TESTER_*`` environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="SERIAL_TESTER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Browser launch
    browser_type: BrowserType = Field(BrowserType.CHROMIUM, description="Browser engine to launch")
    headless: bool = Field(True, description="Run the browser without a window")
    slow_mo: int = Field(0, description="Milliseconds to slow down each browser operation")

    # Browser session
    viewport_width: int = Field(1280, description="Viewport width in pixels")
    viewport_height: int = Field(720, description="Viewport height in pixels")
    user_agent: Optional[str] = Field(None, description="User agent override")
    record_video: bool = Field(False, description="Record a video of each browser session")
    videos_dir: str = Field("./test-videos/", description="Directory for recorded videos")
    screenshots_dir: str = Field("./screenshots/", description="Directory for screenshots")

    # Timeouts
    timeout_ms: int = Field(30000, description="Default timeout for selector waits")
    login_confirmation_timeout_ms: int = Field(5000, description="Timeout for the active user indicator")
    http_timeout: float = Field(30.0, description="Timeout for backend HTTP requests in seconds")

    # Diagnostics
    verbose: bool = Field(False, description="Log notices and compared rows")
    log_level: str = Field("INFO", description="Log level")
    benchmarks: Optional[str] = Field(None, description="Name of the local benchmark files")


def get_settings() -> Settings:
    """Get settings."""
    return Settings()


@dataclass
class BrowserConfig:
    """Configuration for one launched browser."""
    browser_type: BrowserType = BrowserType.CHROMIUM
    headless: bool = True
    slow_mo: int = 0  # Milliseconds between actions
    record_video: bool = False

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "BrowserConfig":
        settings = settings or get_settings()
        return cls(
            browser_type=settings.browser_type,
            headless=settings.headless,
            slow_mo=settings.slow_mo,
            record_video=settings.record_video,
        )


@dataclass
class SessionConfig:
    """Configuration for one browser session (context + page)."""
    viewport_width: int = 1280
    viewport_height: int = 720
    user_agent: Optional[str] = None
    record_video: bool = False
    videos_dir: str = "./test-videos/"
    screenshots_dir: str = "./screenshots/"
    timeout_ms: int = 30000
    login_confirmation_timeout_ms: int = 5000

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "SessionConfig":
        settings = settings or get_settings()
        return cls(
            viewport_width=settings.viewport_width,
            viewport_height=settings.viewport_height,
            user_agent=settings.user_agent,
            record_video=settings.record_video,
            videos_dir=settings.videos_dir,
            screenshots_dir=settings.screenshots_dir,
            timeout_ms=settings.timeout_ms,
            login_confirmation_timeout_ms=settings.login_confirmation_timeout_ms,
        )

    @property
    def viewport(self) -> dict:
        return {"width": self.viewport_width, "height": self.viewport_height}
