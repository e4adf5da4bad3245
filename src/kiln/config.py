"""Application configuration.

KilnConfig is a frozen dataclass — immutable after creation, IDE-autocompletable,
no string-key dict lookups.
"""

from dataclasses import dataclass
from pathlib import Path

from kiln.errors import ConfigurationError


@dataclass(frozen=True, slots=True)
class KilnConfig:
    """Application configuration. Immutable after creation.

    All fields have sensible defaults. Override what you need::

        config = KilnConfig(debug=True, port=3000, render_timeout=5.0)
    """

    # Server
    host: str = "127.0.0.1"
    port: int = 8000
    debug: bool = False
    log_level: str = "info"

    # Reload (follows debug unless overridden)
    reload_include: tuple[str, ...] = ()
    reload_dirs: tuple[str, ...] = ()

    # Render pipeline
    render_timeout: float = 10.0
    anchor: str = "</head>"
    tail_window: int | None = None  # None = len(anchor) + 1
    state_global: str = "__STATE__"
    head_fragments: tuple[str, ...] = ()  # Raw markup replayed into <head>
    bootstrap_modules: tuple[str, ...] = ()  # <script type="module" src=...>

    # Templates (TemplateRenderer)
    template_dir: str | Path = "templates"
    autoescape: bool = True

    # Channel (client side)
    channel_url: str | None = None
    join_timeout: float = 10.0
    heartbeat_interval: float = 30.0

    # Limits
    max_content_length: int = 16 * 1024 * 1024  # 16 MB

    @property
    def anchor_bytes(self) -> bytes:
        return self.anchor.encode("utf-8")

    @property
    def effective_tail_window(self) -> int:
        """Tail buffer size for the injector (always > anchor length)."""
        if self.tail_window is None:
            return len(self.anchor_bytes) + 1
        return self.tail_window

    def validate(self) -> None:
        """Raise ``ConfigurationError`` for values the pipeline cannot honor."""
        if not self.anchor:
            raise ConfigurationError("anchor must be a non-empty string")
        if self.tail_window is not None and self.tail_window <= len(self.anchor_bytes):
            msg = (
                f"tail_window ({self.tail_window}) must be greater than the anchor "
                f"length ({len(self.anchor_bytes)} bytes)"
            )
            raise ConfigurationError(msg)
        if self.render_timeout <= 0:
            raise ConfigurationError("render_timeout must be positive")
        if self.join_timeout <= 0:
            raise ConfigurationError("join_timeout must be positive")
        if not self.state_global.isidentifier():
            msg = f"state_global {self.state_global!r} is not a valid JavaScript identifier"
            raise ConfigurationError(msg)
