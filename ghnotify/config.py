"""Relay configuration.

Two layers live here:

* ``Settings``: process-level knobs read from the environment (or ``.env``)
  with the ``GHNOTIFY_`` prefix.
* ``Config``: the immutable snapshot built from the TOML config file. It is
  loaded once at startup and shared read-only by every request handler.
"""

import logging
import tomllib
from pathlib import Path
from typing import Dict, FrozenSet, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from ghnotify.errors import ConfigError

logger = logging.getLogger(__name__)

VALID_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
DEFAULT_API_SERVER = "https://api.telegram.org"


class Settings(BaseSettings):
    """Runtime settings loaded from environment or .env."""

    model_config = SettingsConfigDict(
        env_prefix="GHNOTIFY_", env_file=".env", extra="ignore"
    )

    config_path: str = "data/config.toml"
    log_level: str = "INFO"

    # Dispatch
    dispatch_max_attempts: int = Field(default=3, ge=1)
    dispatch_backoff_seconds: float = Field(default=1.0, ge=0)
    dispatch_timeout_seconds: float = Field(default=10.0, gt=0)
    dispatch_max_delay_seconds: float = Field(default=60.0, gt=0)
    wait_for_dispatch: bool = False

    # HTTP
    max_body_bytes: int = Field(default=262_144, gt=0)

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Normalise the log level and reject unknown names.

        Args:
            v: The log level from environment or config.

        Returns:
            The upper-cased level name.

        Raises:
            ValueError: If the level is not a standard logging level.
        """
        level = v.strip().upper()
        if level not in VALID_LOG_LEVELS:
            raise ValueError(
                f"Invalid log level '{v}', expected one of {sorted(VALID_LOG_LEVELS)}"
            )
        return level


def create_settings() -> Settings:
    """Load and validate runtime settings from environment variables.

    Returns:
        Settings: Validated settings instance.

    Raises:
        SystemExit: Exits with code 1 if validation fails.
    """
    try:
        return Settings()
    except ValidationError as e:
        for err in e.errors():
            logger.error(f"  {err['loc']}: {err['msg']}")
        raise SystemExit(1)


# -----------------------------------
# TOML file schema
# -----------------------------------


def _as_chat_list(v: Union[int, List[int], None]) -> Optional[List[int]]:
    if v is None or isinstance(v, list):
        return v
    return [v]


class TomlServer(BaseModel):
    """``[server]`` table as written in the config file."""

    model_config = ConfigDict(extra="forbid")

    bind: str = "127.0.0.1"
    port: int = Field(ge=1, le=65535)
    secrets: Optional[str] = None
    token: Optional[str] = None


class TomlTelegram(BaseModel):
    """``[telegram]`` table as written in the config file."""

    model_config = ConfigDict(extra="forbid")

    bot_token: str
    api_server: Optional[str] = None
    send_to: List[int] = Field(default_factory=list)

    @field_validator("send_to", mode="before")
    @classmethod
    def normalize_send_to(cls, v):
        return _as_chat_list(v)


class TomlRepository(BaseModel):
    """One ``[[repository]]`` entry as written in the config file."""

    model_config = ConfigDict(extra="forbid")

    full_name: str
    send_to: Optional[List[int]] = None
    branch_ignore: List[str] = Field(default_factory=list)

    @field_validator("send_to", mode="before")
    @classmethod
    def normalize_send_to(cls, v):
        return _as_chat_list(v)

    @field_validator("full_name")
    @classmethod
    def validate_full_name(cls, v: str) -> str:
        owner, sep, repo = v.partition("/")
        if not sep or not owner or not repo or "/" in repo:
            raise ValueError(f"full_name must look like 'owner/repo', got '{v}'")
        return v


class TomlConfig(BaseModel):
    """The whole config file."""

    model_config = ConfigDict(extra="forbid")

    server: TomlServer
    telegram: TomlTelegram
    repository: List[TomlRepository] = Field(default_factory=list)


# -----------------------------------
# In-memory snapshot
# -----------------------------------


class ServerAuth(BaseModel):
    """Authentication material for inbound deliveries.

    Either mechanism may be unset. When both are set, a delivery passing
    either check is accepted.
    """

    model_config = ConfigDict(frozen=True)

    signing_secret: Optional[bytes] = Field(default=None, repr=False)
    url_token: Optional[str] = Field(default=None, repr=False)

    @property
    def is_open(self) -> bool:
        """True when no authentication is configured at all."""
        return self.signing_secret is None and self.url_token is None


class TelegramTarget(BaseModel):
    """Bot credentials and the default destination chats."""

    model_config = ConfigDict(frozen=True)

    bot_token: str = Field(repr=False)
    default_chats: FrozenSet[int] = frozenset()
    api_server: str = DEFAULT_API_SERVER


class RepositoryRoute(BaseModel):
    """Per-repository override.

    ``chats`` is ``None`` when the repository falls back to the default chats,
    and an empty set when it is explicitly routed nowhere.
    """

    model_config = ConfigDict(frozen=True)

    full_name: str
    chats: Optional[FrozenSet[int]] = None
    branch_ignore: FrozenSet[str] = frozenset()


class Config(BaseModel):
    """Immutable process-lifetime configuration snapshot."""

    model_config = ConfigDict(frozen=True)

    bind: str
    port: int
    auth: ServerAuth
    telegram: TelegramTarget
    repositories: Dict[str, RepositoryRoute] = Field(default_factory=dict)

    @property
    def bind_address(self) -> str:
        return f"{self.bind}:{self.port}"

    @classmethod
    def from_toml(cls, raw: TomlConfig) -> "Config":
        """Build the snapshot from the parsed config file.

        Args:
            raw: The validated file contents.

        Returns:
            The immutable configuration.

        Raises:
            ConfigError: If a repository is listed more than once.
        """
        repositories: Dict[str, RepositoryRoute] = {}
        for repo in raw.repository:
            if repo.full_name in repositories:
                raise ConfigError(f"Duplicate repository entry: {repo.full_name}")
            repositories[repo.full_name] = RepositoryRoute(
                full_name=repo.full_name,
                chats=None if repo.send_to is None else frozenset(repo.send_to),
                branch_ignore=frozenset(repo.branch_ignore),
            )

        secret = raw.server.secrets or None
        token = raw.server.token or None
        return cls(
            bind=raw.server.bind,
            port=raw.server.port,
            auth=ServerAuth(
                signing_secret=secret.encode("utf-8") if secret else None,
                url_token=token,
            ),
            telegram=TelegramTarget(
                bot_token=raw.telegram.bot_token,
                default_chats=frozenset(raw.telegram.send_to),
                api_server=(raw.telegram.api_server or DEFAULT_API_SERVER).rstrip("/"),
            ),
            repositories=repositories,
        )


def parse_config(contents: str) -> Config:
    """Parse config file contents into a ``Config``.

    Raises:
        ConfigError: On invalid TOML, schema violations or duplicate entries.
    """
    try:
        data = tomllib.loads(contents)
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"Invalid TOML: {e}") from e

    try:
        raw = TomlConfig.model_validate(data)
    except ValidationError as e:
        details = "; ".join(
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()
        )
        raise ConfigError(f"Invalid configuration: {details}") from e

    return Config.from_toml(raw)


def load_config(path: Union[str, Path]) -> Config:
    """Read and parse the config file at ``path``.

    Args:
        path: Location of the TOML config file.

    Returns:
        The immutable configuration snapshot.

    Raises:
        ConfigError: If the file cannot be read or is invalid.
    """
    path = Path(path)
    try:
        contents = path.read_text(encoding="utf-8")
    except OSError as e:
        logger.error(f"Unable to read config file {path}: {e}")
        raise ConfigError(f"Unable to read config file {path}: {e}") from e

    config = parse_config(contents)

    if config.auth.is_open:
        logger.warning(
            "⚠️ Neither server.secrets nor server.token is set, "
            "every delivery will be accepted without authentication"
        )
    if not config.telegram.bot_token:
        logger.warning("Telegram bot token is empty, notifications will not be sent")
    for route in config.repositories.values():
        if route.chats is None and not config.telegram.default_chats:
            logger.warning(
                f"Repository {route.full_name} has no send_to and there are no "
                "default chats, its events will be suppressed"
            )

    logger.info(
        f"Loaded config from {path}: {len(config.repositories)} repository route(s)"
    )
    return config


settings = create_settings()
