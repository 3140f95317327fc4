"""sprinter configuration.

Loads from ~/.config/sprinter/config.yaml with .env file and environment
variable overrides.
"""

from __future__ import annotations

import getpass
import logging
import os
from dataclasses import dataclass, field, replace
from pathlib import Path

import yaml
from dotenv import load_dotenv

from .exceptions import ConfigurationError, MissingTokenError
from .jira.models import DEFAULT_TASK_KINDS, FieldMap, JiraConfig, TaskKind

logger = logging.getLogger(__name__)

CONFIG_DIR = Path.home() / ".config" / "sprinter"

_TRUE = {"1", "true", "yes", "on"}


def dotenv_paths() -> list[Path]:
    """.env files read at startup, most specific first."""
    return [
        Path.cwd() / ".env",
        CONFIG_DIR / ".env",
        Path.home() / ".env.sprinter",
        Path.home() / ".env",
    ]


def load_env_files(paths: list[Path] | None = None) -> None:
    """Load .env files into os.environ without overriding what is already set.

    Earlier files win over later ones since nothing is overridden.
    """
    for path in paths if paths is not None else dotenv_paths():
        if path.is_file():
            logger.debug("Loading environment from %s", path)
            load_dotenv(path, override=False)


def default_assignee(email_domain: str) -> str:
    """Derive an assignee email from the login name."""
    return f"{getpass.getuser()}@{email_domain}"


def _parse_bool(value: str) -> bool:
    return value.strip().lower() in _TRUE


@dataclass
class SprinterConfig:
    """Settings for one sprinter run."""

    server: str = "https://issues.redhat.com"
    token: str = ""  # loaded from env only (never from the YAML file)
    project: str = "RHEL"
    board: int | None = None
    assignee: str = ""
    email_domain: str = "redhat.com"
    nocolor: bool = False
    dry: bool = False
    allow_backlog: bool = False
    fields: FieldMap = field(default_factory=FieldMap)
    task_kinds: tuple[TaskKind, ...] = DEFAULT_TASK_KINDS

    CONFIG_FILE: Path = field(
        default_factory=lambda: CONFIG_DIR / "config.yaml",
        repr=False,
    )

    @classmethod
    def load(
        cls,
        config_path: Path | None = None,
        env_files: list[Path] | None = None,
    ) -> SprinterConfig:
        """Load config from file and environment variables.

        Priority (highest wins):
          1. Environment variables (JIRA_API_TOKEN, BOARD, ASSIGNEE, ...)
          2. .env files (see dotenv_paths())
          3. Config file (~/.config/sprinter/config.yaml, $SPRINTER_CONFIG or custom path)
          4. Defaults

        CLI flags are applied on top by the caller.
        """
        config = cls()
        load_env_files(env_files)

        file_path = config_path or Path(os.environ.get("SPRINTER_CONFIG", config.CONFIG_FILE))
        if file_path.exists():
            try:
                with open(file_path) as f:
                    data = yaml.safe_load(f) or {}
                # Adopt the file only if every key in it is valid
                from_file = replace(config)
                from_file._apply_file(data)
                config = from_file
            except (yaml.YAMLError, OSError, ValueError, TypeError, KeyError) as e:
                logger.warning("Ignoring config file %s: %s", file_path, e)

        config.token = os.environ.get("JIRA_API_TOKEN", config.token)
        config.server = os.environ.get("JIRA_SERVER", config.server)
        config.project = os.environ.get("JIRA_PROJECT", config.project)
        config.assignee = os.environ.get("ASSIGNEE", config.assignee)

        if env_board := os.environ.get("BOARD"):
            try:
                config.board = int(env_board)
            except ValueError:
                raise ConfigurationError(f"BOARD must be a board id, got {env_board!r}") from None
        if env_nocolor := os.environ.get("NOCOLOR"):
            config.nocolor = _parse_bool(env_nocolor)
        if env_dry := os.environ.get("DRY"):
            config.dry = _parse_bool(env_dry)

        if not config.assignee:
            config.assignee = default_assignee(config.email_domain)

        return config

    def _apply_file(self, data: dict) -> None:
        if not isinstance(data, dict):
            raise ValueError("config root must be a mapping")

        self.server = data.get("server", self.server)
        self.project = data.get("project", self.project)
        if data.get("board") is not None:
            self.board = int(data["board"])
        self.assignee = data.get("assignee", self.assignee) or ""
        self.email_domain = data.get("email_domain", self.email_domain)
        self.nocolor = bool(data.get("nocolor", self.nocolor))
        self.dry = bool(data.get("dry", self.dry))
        self.allow_backlog = bool(data.get("allow_backlog", self.allow_backlog))

        if "fields" in data:
            self.fields = FieldMap.from_dict(data["fields"] or {})
        if data.get("task_kinds"):
            self.task_kinds = tuple(TaskKind.from_dict(k) for k in data["task_kinds"])

    def jira(self) -> JiraConfig:
        """Connection settings for the Jira client."""
        return JiraConfig(server=self.server, token=self.token, project=self.project)

    def require_token(self) -> None:
        if not self.token:
            raise MissingTokenError()

    def require_board(self) -> int:
        if self.board is None:
            raise ConfigurationError("No board id given. Use --board or set BOARD")
        return self.board
