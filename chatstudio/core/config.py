"""
Configuration: encrypted provider keys and chat settings.

Provider API keys are stored encrypted in ~/.chatstudio/config/ and act as
the process-level fallback when neither the request nor the provider
descriptor carries a key. Settings (history window, timeouts, user-defined
providers) come from ~/.chatstudio/settings.yaml with environment overrides.
"""

from __future__ import annotations

import json
import logging
import os
import re
from pathlib import Path
from typing import Any, Literal

import yaml
from cryptography.fernet import Fernet, InvalidToken
from pydantic import BaseModel, Field, ValidationError
from rich.console import Console
from rich.table import Table

from chatstudio.core.errors import ChatStudioError

logger = logging.getLogger(__name__)

console = Console()

# Process-level keys understood by the built-in providers
KNOWN_PROVIDER_KEYS = {
    "OPENAI_API_KEY": "OpenAI (GPT models, DALL-E)",
    "ANTHROPIC_API_KEY": "Anthropic (Claude)",
    "MISTRAL_API_KEY": "Mistral AI",
}

ENV_HISTORY_LIMIT = "CHATSTUDIO_HISTORY_LIMIT"
ENV_HISTORY_POLICY = "CHATSTUDIO_HISTORY_POLICY"
ENV_SESSIONS_DIR = "CHATSTUDIO_SESSIONS_DIR"
ENV_TIMEOUT = "CHATSTUDIO_TIMEOUT"


def get_home_dir() -> Path:
    """Get the ~/.chatstudio directory."""
    return Path.home() / ".chatstudio"


class ConfigManager:
    """
    Manages process-level provider keys.

    Keys are stored encrypted and looked up environment-first, so an
    exported OPENAI_API_KEY always wins over a stored one.

    Directory structure:
        ~/.chatstudio/config/.key     # Encryption key
        ~/.chatstudio/config/keys.enc # Encrypted API keys
    """

    def __init__(self, base_dir: Path | None = None):
        """
        Initialize the config manager.

        Args:
            base_dir: Base directory for config storage.
                      Defaults to ~/.chatstudio/config/
        """
        if base_dir is None:
            base_dir = get_home_dir() / "config"

        self.base_dir = base_dir
        self.base_dir.mkdir(parents=True, exist_ok=True)
        self._fernet = self._get_fernet()
        self._cache: dict[str, str] | None = None

    def _get_fernet(self) -> Fernet:
        """Get or create the encryption key."""
        key_file = self.base_dir / ".key"

        if key_file.exists():
            key = key_file.read_bytes()
        else:
            key = Fernet.generate_key()
            key_file.write_bytes(key)
            try:
                key_file.chmod(0o600)
            except OSError:
                pass

        return Fernet(key)

    def _keys_path(self) -> Path:
        return self.base_dir / "keys.enc"

    def _load_keys(self) -> dict[str, str]:
        """Load and decrypt stored keys."""
        if self._cache is not None:
            return self._cache

        path = self._keys_path()
        if not path.exists():
            self._cache = {}
            return self._cache

        try:
            decrypted = self._fernet.decrypt(path.read_bytes())
            self._cache = json.loads(decrypted)
        except (InvalidToken, json.JSONDecodeError):
            logger.warning("Stored keys at %s are unreadable; ignoring them", path)
            self._cache = {}
        return self._cache

    def _save_keys(self, keys: dict[str, str]) -> None:
        encrypted = self._fernet.encrypt(json.dumps(keys).encode())
        path = self._keys_path()
        path.write_bytes(encrypted)
        try:
            path.chmod(0o600)
        except OSError:
            pass
        self._cache = keys

    def get(self, name: str) -> str | None:
        """Get a key, checking the environment before stored config."""
        if os.environ.get(name):
            return os.environ[name]
        return self._load_keys().get(name)

    def set(self, name: str, value: str) -> None:
        keys = self._load_keys()
        keys[name] = value
        self._save_keys(keys)

    def delete(self, name: str) -> bool:
        """Delete a stored key. Returns True if it existed."""
        keys = self._load_keys()
        if name in keys:
            del keys[name]
            self._save_keys(keys)
            return True
        return False

    def list_keys(self) -> list[str]:
        return list(self._load_keys().keys())

    def load_into_environment(self) -> int:
        """
        Load all stored keys into environment variables.

        Only sets variables that aren't already in the environment.

        Returns:
            Number of keys loaded
        """
        loaded = 0
        for name, value in self._load_keys().items():
            if name not in os.environ:
                os.environ[name] = value
                loaded += 1
        return loaded

    def set_from_file(self, file_path: str | Path) -> int:
        """
        Import keys from a .env file.

        File format (one per line):
            KEY_NAME=value
            # comments are ignored
            export KEY_NAME=value  # export prefix is stripped

        Returns:
            Number of keys imported
        """
        path = Path(file_path)
        if not path.exists():
            raise FileNotFoundError(f"File not found: {file_path}")

        imported = 0
        pattern = re.compile(r"^(?:export\s+)?([A-Z_][A-Z0-9_]*)=(.+)$")

        with open(path) as f:
            for line in f:
                line = line.strip()
                if not line or line.startswith("#"):
                    continue

                match = pattern.match(line)
                if match:
                    name, value = match.groups()
                    if (value.startswith('"') and value.endswith('"')) or \
                       (value.startswith("'") and value.endswith("'")):
                        value = value[1:-1]
                    self.set(name, value)
                    imported += 1

        return imported

    def show_status(self) -> None:
        """Display stored keys and whether the environment overrides them."""
        keys = self._load_keys()

        if not keys:
            console.print("[dim]No API keys configured[/dim]")
            console.print()
            console.print("Run [cyan]chatstudio config set[/cyan] to add keys")
            return

        table = Table(title="Configured API Keys")
        table.add_column("Key", style="cyan")
        table.add_column("Provider")
        table.add_column("Status")

        for name in sorted(keys):
            provider = KNOWN_PROVIDER_KEYS.get(name, "Custom")
            if name in os.environ and os.environ[name] != keys[name]:
                status = "[yellow]env override[/yellow]"
            else:
                status = "[green]stored[/green]"
            table.add_row(name, provider, status)

        console.print(table)
        console.print()
        console.print(f"[dim]Config location: {self.base_dir}[/dim]")


class SettingsError(ChatStudioError):
    """settings.yaml exists but cannot be used."""


class ChatSettings(BaseModel):
    """Runtime settings for memory, routing and the user's own providers."""

    history_limit: int = Field(default=10, ge=0, description="Turns of prior context injected per request")
    history_policy: Literal["oldest", "latest"] = Field(
        default="oldest",
        description="Which turns fill the window once history outgrows it",
    )
    request_timeout: float = Field(default=120.0, gt=0, description="Upstream timeout in seconds")
    sessions_dir: Path = Field(default_factory=lambda: get_home_dir() / "sessions")
    default_provider: str = "pollinations"
    format_instructions: bool = Field(
        default=True,
        description="Ask non-default providers for code blocks, lists and headings",
    )
    custom_providers: list[dict[str, Any]] = Field(default_factory=list)
    local_models: list[dict[str, Any]] = Field(default_factory=list)

    def catalog(self) -> list[dict[str, Any]]:
        """The user-defined provider entries, custom first then local."""
        local = [{"source": "local", **entry} for entry in self.local_models]
        custom = [{"source": "custom", **entry} for entry in self.custom_providers]
        return custom + local


def _env_overrides() -> dict[str, Any]:
    overrides: dict[str, Any] = {}
    if os.environ.get(ENV_HISTORY_LIMIT):
        overrides["history_limit"] = os.environ[ENV_HISTORY_LIMIT]
    if os.environ.get(ENV_HISTORY_POLICY):
        overrides["history_policy"] = os.environ[ENV_HISTORY_POLICY]
    if os.environ.get(ENV_SESSIONS_DIR):
        overrides["sessions_dir"] = os.environ[ENV_SESSIONS_DIR]
    if os.environ.get(ENV_TIMEOUT):
        overrides["request_timeout"] = os.environ[ENV_TIMEOUT]
    return overrides


def load_settings(path: Path | None = None) -> ChatSettings:
    """
    Load settings from YAML, applying environment overrides.

    A missing file yields defaults.

    Raises:
        SettingsError: If the file is not valid YAML or fails validation
    """
    if path is None:
        path = get_home_dir() / "settings.yaml"

    data: dict[str, Any] = {}
    if path.exists():
        try:
            with open(path) as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise SettingsError(f"{path}: invalid YAML ({e})") from e
        if not isinstance(data, dict):
            raise SettingsError(f"{path}: expected a mapping at top level")

    data.update(_env_overrides())
    try:
        return ChatSettings(**data)
    except ValidationError as e:
        issues = "; ".join(
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()
        )
        raise SettingsError(f"{path}: {issues}") from e


def save_settings(settings: ChatSettings, path: Path | None = None) -> None:
    """Write settings back to YAML."""
    if path is None:
        path = get_home_dir() / "settings.yaml"
    path.parent.mkdir(parents=True, exist_ok=True)
    data = settings.model_dump(mode="json")
    with open(path, "w") as f:
        yaml.dump(data, f, default_flow_style=False, sort_keys=False)


# Global config manager instance
_config_manager: ConfigManager | None = None


def get_config_manager() -> ConfigManager:
    """Get the global config manager instance."""
    global _config_manager
    if _config_manager is None:
        _config_manager = ConfigManager()
    return _config_manager


def load_config() -> int:
    """
    Load stored provider keys into the environment.

    Returns:
        Number of keys loaded
    """
    return get_config_manager().load_into_environment()
