"""Configuration objects and constants for the cloner."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Optional, Tuple

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)
DEFAULT_VIEWPORT = {"width": 1366, "height": 768}
BROWSER_ARGS = ("--no-sandbox", "--disable-setuid-sandbox", "--disable-dev-shm-usage")
EXECUTABLE_ENV_VAR = "PLAYWRIGHT_CHROMIUM_EXECUTABLE_PATH"
KNOWN_EXECUTABLES = (
    "/ms-playwright/chromium-1200/chrome-linux/chrome",
    "/ms-playwright/chromium_headless_shell-1200/chrome-headless-shell-linux64/chrome-headless-shell",
)


@dataclass
class CloneConfig:
    """Top-level settings that control rendering and asset collection."""

    output_root: Path = Path("output")
    headless: bool = True
    viewport: Dict[str, int] = field(default_factory=lambda: dict(DEFAULT_VIEWPORT))
    user_agent: str = DEFAULT_USER_AGENT
    navigation_timeout: float = 60.0
    settle_delay: float = 2.0
    scroll_step_delay: float = 0.3
    max_scroll_iterations: int = 30
    network_idle_timeout: float = 10.0
    trailing_delay: float = 1.0
    asset_timeout: float = 30.0
    max_concurrent_downloads: int = 8
    pipeline_timeout: Optional[float] = None
    executable_path: Optional[Path] = None
    browser_args: Tuple[str, ...] = BROWSER_ARGS

    def browser_executable(self) -> Optional[Path]:
        """Return a Chromium binary to launch, or ``None`` for Playwright's own."""
        candidates = [self.executable_path, os.getenv(EXECUTABLE_ENV_VAR), *KNOWN_EXECUTABLES]
        for candidate in candidates:
            if not candidate:
                continue
            path = Path(candidate).expanduser()
            if path.is_file():
                return path
        return None
