"""YAML configuration loader with env var resolution and Pydantic validation.

Loads config from (priority order):
1. --config <path> CLI flag
2. <user config dir>/config.yaml (platformdirs)

${VAR} references in YAML values resolve from the environment at load time.
Environment variables then override YAML:

- PEX_LOG, PEX_LOG_LEVEL, PEX_LOG_TO_STDERR: log file, level, stderr copy
- PEXSHELL_<SECTION>_<KEY>: any scalar setting, e.g. PEXSHELL_HTTP_TIMEOUT
- PEX_ADDRESS, PEX_USER, PEX_PASS: select or define the user (see
  ``select_user``)

Only user records are written back (login, logout, last used); secrets are
never stored in this file.
"""

import logging
import os
import re
import tempfile
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Mapping

import yaml
from pydantic import BaseModel, ConfigDict, Field, SecretStr, field_validator
from pydantic import ValidationError as PydanticValidationError

from pexshell.errors import ConfigurationError
from pexshell.models.invocation import CredentialKind, Credentials
from pexshell.services.authenticators import DEFAULT_PROBE_PATH
from pexshell.services.schema_source import DEFAULT_API_GROUPS
from pexshell.services.transport import normalize_address
from pexshell.utils.paths import get_default_config_path

logger = logging.getLogger(__name__)

ENV_LOG_FILE = "PEX_LOG"
ENV_LOG_LEVEL = "PEX_LOG_LEVEL"
ENV_LOG_TO_STDERR = "PEX_LOG_TO_STDERR"
ENV_USER_ADDRESS = "PEX_ADDRESS"
ENV_USER_USERNAME = "PEX_USER"
ENV_USER_PASSWORD = "PEX_PASS"
ENV_PREFIX = "PEXSHELL_"

_ENV_VAR_PATTERN = re.compile(r"\$\{([^}]+)\}")


def resolve_env_vars(value: str, env: Mapping[str, str] | None = None) -> str:
    """Resolve ${VAR} references in a string.

    Args:
        value: String potentially containing ${VAR} references.
        env: Environment to read; defaults to ``os.environ``.

    Returns:
        String with all references replaced. Missing variables resolve to
        an empty string.
    """
    env = os.environ if env is None else env

    def _replace(match: re.Match) -> str:
        return env.get(match.group(1), "")

    return _ENV_VAR_PATTERN.sub(_replace, value)


def _resolve_env_vars_recursive(data: Any, env: Mapping[str, str]) -> Any:
    if isinstance(data, str):
        return resolve_env_vars(data, env)
    elif isinstance(data, dict):
        return {k: _resolve_env_vars_recursive(v, env) for k, v in data.items()}
    elif isinstance(data, list):
        return [_resolve_env_vars_recursive(item, env) for item in data]
    return data


class LogConfig(BaseModel):
    """Where and how much to log."""

    file: str | None = None
    level: str = "warning"
    stderr: bool = False

    @field_validator("level")
    @classmethod
    def known_level(cls, value: str) -> str:
        level = value.strip().lower()
        if level not in {"debug", "info", "warning", "error", "critical", "off"}:
            raise ValueError(f"unknown log level: {value}")
        return level


class HttpConfig(BaseModel):
    """Transport settings."""

    verify: bool = True
    timeout: float = 30.0
    max_concurrency: int = Field(default=5, ge=1)


class SchemaConfig(BaseModel):
    """Which API groups to discover and how to verify logins."""

    apis: list[str] = list(DEFAULT_API_GROUPS)
    probe_path: str = DEFAULT_PROBE_PATH


class UserConfig(BaseModel):
    """A known login. The secret itself lives in the system keychain."""

    address: str
    username: str
    kind: CredentialKind = CredentialKind.BASIC
    current: bool = False
    last_used: datetime | None = None

    @property
    def ident(self) -> str:
        return f"{self.username}@{self.address}"


class PexShellConfig(BaseModel):
    """Top-level configuration."""

    model_config = ConfigDict(populate_by_name=True)

    log: LogConfig = LogConfig()
    http: HttpConfig = HttpConfig()
    schema_: SchemaConfig = Field(default=SchemaConfig(), alias="schema")
    users: list[UserConfig] = []

    @property
    def current_user(self) -> UserConfig | None:
        for user in self.users:
            if user.current:
                return user
        return None

    def find_user(self, address: str, username: str) -> UserConfig | None:
        for user in self.users:
            if user.address == address and user.username == username:
                return user
        return None

    def upsert_user(self, user: UserConfig, make_current: bool = True) -> UserConfig:
        """Add or replace a user record, optionally making it current."""
        self.users = [
            u for u in self.users
            if not (u.address == user.address and u.username == user.username)
        ]
        if make_current:
            for u in self.users:
                u.current = False
            user.current = True
        self.users.append(user)
        return user

    def remove_user(self, address: str, username: str) -> bool:
        before = len(self.users)
        self.users = [
            u for u in self.users
            if not (u.address == address and u.username == username)
        ]
        return len(self.users) != before

    def to_yaml_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


def _apply_env_overrides(data: dict[str, Any], env: Mapping[str, str]) -> dict[str, Any]:
    """Apply PEX_LOG* and PEXSHELL_<SECTION>_<KEY> overrides.

    Args:
        data: Parsed YAML config dict.
        env: Environment to read.

    Returns:
        Config dict with overrides applied.
    """
    known_sections = ("log", "http", "schema")
    for key, value in env.items():
        if not key.startswith(ENV_PREFIX):
            continue
        suffix = key[len(ENV_PREFIX):].lower()
        section, _, field = suffix.partition("_")
        if section not in known_sections or not field:
            continue
        target = data.setdefault(section, {})
        if isinstance(target, dict):
            target[field] = value

    log = data.setdefault("log", {})
    if isinstance(log, dict):
        if env.get(ENV_LOG_FILE):
            log["file"] = env[ENV_LOG_FILE]
        if env.get(ENV_LOG_LEVEL):
            log["level"] = env[ENV_LOG_LEVEL]
        if env.get(ENV_LOG_TO_STDERR):
            log["stderr"] = env[ENV_LOG_TO_STDERR].strip().lower() in {"1", "true", "yes", "on"}
    return data


def load_config(
    config_path: str | Path | None = None,
    env: Mapping[str, str] | None = None,
) -> PexShellConfig:
    """Load configuration, falling back to defaults when no file exists.

    Args:
        config_path: Explicit path. Must exist when given.
        env: Environment to read; defaults to ``os.environ``.

    Returns:
        Validated configuration.

    Raises:
        ConfigurationError: If the file is missing (explicit path only),
            unreadable or invalid.
    """
    env = os.environ if env is None else env
    if config_path:
        path = Path(config_path).expanduser()
        if not path.exists():
            raise ConfigurationError(f"config file not found: {path}")
    else:
        path = get_default_config_path()

    raw_data: Any = {}
    if path.exists():
        logger.info("Loading config from %s", path)
        try:
            with open(path, encoding="utf-8") as f:
                raw_data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ConfigurationError(f"cannot read {path}: {e}") from e
        if not isinstance(raw_data, dict):
            raise ConfigurationError(f"{path} must contain a mapping")

    data = _resolve_env_vars_recursive(raw_data, env)
    data = _apply_env_overrides(data, env)
    try:
        return PexShellConfig.model_validate(data)
    except PydanticValidationError as e:
        raise ConfigurationError(f"invalid configuration in {path}: {e}") from e


def save_config(config: PexShellConfig, config_path: str | Path | None = None) -> Path:
    """Write configuration atomically (temp file + replace)."""
    path = Path(config_path).expanduser() if config_path else get_default_config_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=path.stem, suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            yaml.safe_dump(config.to_yaml_dict(), f, sort_keys=False)
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise
    logger.info("Saved config to %s", path)
    return path


@dataclass(frozen=True)
class UserSelection:
    """Which user to run as.

    ``override`` holds ephemeral credentials built from the environment;
    otherwise the secret store is consulted for ``address``/``username``.
    """

    address: str
    username: str
    kind: CredentialKind = CredentialKind.BASIC
    override: Credentials | None = None


def select_user(config: PexShellConfig, env: Mapping[str, str] | None = None) -> UserSelection | None:
    """Pick the active user from the environment or the config file.

    - PEX_ADDRESS + PEX_USER + PEX_PASS: ephemeral basic credentials.
    - PEX_ADDRESS + PEX_USER: the matching stored user.
    - neither: the user marked current in the config file.

    Raises:
        ConfigurationError: If only one of PEX_ADDRESS/PEX_USER is set, or
            they name a user that has never logged in.
    """
    env = os.environ if env is None else env
    address = env.get(ENV_USER_ADDRESS)
    username = env.get(ENV_USER_USERNAME)
    password = env.get(ENV_USER_PASSWORD)

    if address and username:
        address = normalize_address(address)
        if password:
            return UserSelection(
                address=address,
                username=username,
                override=Credentials(
                    address=address,
                    username=username,
                    secret=SecretStr(password),
                    ephemeral=True,
                ),
            )
        user = config.find_user(address, username)
        if user is None:
            raise ConfigurationError(
                f"{ENV_USER_ADDRESS} and {ENV_USER_USERNAME} name an unknown user; "
                f"log in as that user, set {ENV_USER_PASSWORD}, or unset both"
            )
        return UserSelection(address=user.address, username=user.username, kind=user.kind)
    if address or username:
        present, missing = (
            (ENV_USER_ADDRESS, ENV_USER_USERNAME) if address else (ENV_USER_USERNAME, ENV_USER_ADDRESS)
        )
        raise ConfigurationError(
            f"{present} was set in the environment but {missing} was not; set both or neither"
        )

    user = config.current_user
    if user is None:
        return None
    return UserSelection(address=user.address, username=user.username, kind=user.kind)


def touch_user(config: PexShellConfig, selection: UserSelection) -> None:
    """Record that a stored user was just used."""
    user = config.find_user(selection.address, selection.username)
    if user is not None:
        user.last_used = datetime.now(timezone.utc)
