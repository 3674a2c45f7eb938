"""Settings via pydantic-settings with TERMAGENT_ env prefix.

The Anthropic key uses validation_alias to read the unprefixed
ANTHROPIC_API_KEY that other tooling already exports, so a single
.env file drives both.
"""

from pathlib import Path

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="TERMAGENT_", env_file=".env")

    log_level: str = "info"

    # Runtime
    host: str = "0.0.0.0"
    port: int = 8000
    anthropic_api_key: str = Field("", validation_alias="ANTHROPIC_API_KEY")

    # LLM
    model: str = "claude-sonnet-4-5-20250929"
    max_tokens: int = Field(4096, gt=0)
    temperature: float = Field(1.0, ge=0.0, le=1.0)
    system_prompt: str = ""  # Replaces the built-in prompt when set

    # Direct API settings
    max_turns: int = Field(25, ge=1)  # Max model calls per agent run
    api_base_url: str = "https://api.anthropic.com"
    api_timeout_connect: int = 30  # seconds
    api_timeout_read: int = 60  # seconds
    api_timeout_write: int = 60  # seconds

    # Sandbox roots; tmp and bin default to children of home
    home_dir: str = "~/.termagent/home"
    tmp_dir: str = ""
    bin_dir: str = ""

    # Command execution
    command_timeout: int = Field(300, ge=1)  # seconds, native subprocesses
    max_output_chars: int = 100 * 1024
    python_command: str = "python3"
    node_command: str = "node"

    # Sessions
    max_sessions: int = Field(100, ge=1)

    @model_validator(mode="after")
    def _derive_directories(self) -> "Settings":
        home = Path(self.home_dir).expanduser()
        self.home_dir = str(home)
        self.tmp_dir = str(Path(self.tmp_dir).expanduser()) if self.tmp_dir else str(home / "tmp")
        self.bin_dir = str(Path(self.bin_dir).expanduser()) if self.bin_dir else str(home / "bin")
        return self

    def ensure_directories(self) -> None:
        """Create the home/tmp/bin roots if they do not exist yet."""
        for directory in (self.home_dir, self.tmp_dir, self.bin_dir):
            Path(directory).mkdir(parents=True, exist_ok=True)
