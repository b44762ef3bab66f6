"""Application configuration.

AppConfig is a frozen dataclass — immutable after creation, shared by
every request, no string-key dict lookups.
"""

from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True, slots=True)
class AppConfig:
    """Application configuration. Immutable after creation.

    All fields have sensible defaults. Override what you need::

        config = AppConfig(debug=True, port=3000, handler_timeout=5.0)
    """

    # Server
    host: str = "127.0.0.1"
    port: int = 8000
    debug: bool = False

    # Templates
    template_dir: str | Path | None = "templates"
    autoescape: bool = True
    trim_blocks: bool = True
    lstrip_blocks: bool = True

    # Dispatch
    handler_timeout: float | None = None  # Seconds per handler call; None disables

    # Limits
    max_content_length: int = 16 * 1024 * 1024  # 16 MB

    # Logging
    log_level: str = "info"
