"""Summary: Application configuration for TaskDeck.

Importance: Centralizes environment, .env, and config defaults for consistent behavior.
Alternatives: Use a dedicated settings library like Pydantic Settings.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping


@dataclass(frozen=True)
class AppConfig:
    """Summary: Holds configuration values for providers, storage, and the poller.

    Importance: Ensures all services derive settings from a single source of truth.
    Alternatives: Store settings in a shared config file and parse at startup.
    """

    db_path: str
    api_host: str
    api_port: int
    api_key: str
    token_secret: str
    oauth_redirect_uri: str
    google_client_id: str
    google_client_secret: str
    slack_client_id: str
    slack_client_secret: str
    zoom_client_id: str
    zoom_client_secret: str
    google_token_url: str = "https://oauth2.googleapis.com/token"
    slack_token_url: str = "https://slack.com/api/oauth.v2.access"
    zoom_token_url: str = "https://zoom.us/oauth/token"
    relay_base_url: str = ""
    poll_interval_seconds: float = 10.0
    suggestion_ttl_hours: float = 24.0
    suggestion_min_score: int = 70
    jira_default_project: str = "AMP"
    jira_default_issue_type: str = "Task"
    confluence_default_space: str = ""
    http_timeout_seconds: float = 30.0

    @staticmethod
    def from_env() -> "AppConfig":
        """Summary: Build configuration from defaults, .env, and environment.

        Importance: Keeps all variables defined in config defaults while allowing overrides.
        Alternatives: Parse only environment variables without a defaults file.
        """

        defaults = load_defaults(Path("config") / "defaults.json")
        load_dotenv(Path(".env"))
        return AppConfig(
            db_path=os.getenv("TASKDECK_DB_PATH", defaults["db_path"]),
            api_host=os.getenv("TASKDECK_API_HOST", defaults["api_host"]),
            api_port=int(os.getenv("TASKDECK_API_PORT", defaults["api_port"])),
            api_key=os.getenv("TASKDECK_API_KEY", defaults["api_key"]),
            token_secret=os.getenv("TASKDECK_TOKEN_SECRET", defaults["token_secret"]),
            oauth_redirect_uri=os.getenv("OAUTH_REDIRECT_URI", defaults["oauth_redirect_uri"]),
            google_client_id=os.getenv("GOOGLE_CLIENT_ID", defaults["google_client_id"]),
            google_client_secret=os.getenv("GOOGLE_CLIENT_SECRET", defaults["google_client_secret"]),
            slack_client_id=os.getenv("SLACK_CLIENT_ID", defaults["slack_client_id"]),
            slack_client_secret=os.getenv("SLACK_CLIENT_SECRET", defaults["slack_client_secret"]),
            zoom_client_id=os.getenv("ZOOM_CLIENT_ID", defaults["zoom_client_id"]),
            zoom_client_secret=os.getenv("ZOOM_CLIENT_SECRET", defaults["zoom_client_secret"]),
            google_token_url=os.getenv("GOOGLE_TOKEN_URL", defaults["google_token_url"]),
            slack_token_url=os.getenv("SLACK_TOKEN_URL", defaults["slack_token_url"]),
            zoom_token_url=os.getenv("ZOOM_TOKEN_URL", defaults["zoom_token_url"]),
            relay_base_url=os.getenv("TASKDECK_RELAY_URL", defaults["relay_base_url"]),
            poll_interval_seconds=float(
                os.getenv("TASKDECK_POLL_INTERVAL", defaults["poll_interval_seconds"])
            ),
            suggestion_ttl_hours=float(
                os.getenv("TASKDECK_SUGGESTION_TTL_HOURS", defaults["suggestion_ttl_hours"])
            ),
            suggestion_min_score=int(
                os.getenv("TASKDECK_SUGGESTION_MIN_SCORE", defaults["suggestion_min_score"])
            ),
            jira_default_project=os.getenv(
                "JIRA_DEFAULT_PROJECT", defaults["jira_default_project"]
            ),
            jira_default_issue_type=os.getenv(
                "JIRA_DEFAULT_ISSUE_TYPE", defaults["jira_default_issue_type"]
            ),
            confluence_default_space=os.getenv(
                "CONFLUENCE_DEFAULT_SPACE", defaults["confluence_default_space"]
            ),
            http_timeout_seconds=float(
                os.getenv("TASKDECK_HTTP_TIMEOUT", defaults["http_timeout_seconds"])
            ),
        )


@dataclass(frozen=True)
class AtlassianConfig:
    """Summary: Credentials for Jira and Confluence Cloud.

    Importance: Validated once so clients never see half-filled settings.
    Alternatives: Read optional settings fields at every call site.
    """

    domain: str
    email: str
    api_token: str

    def __post_init__(self) -> None:
        missing = [
            name
            for name, value in (("domain", self.domain), ("email", self.email), ("api_token", self.api_token))
            if not value
        ]
        if missing:
            raise ValueError(f"Missing Atlassian settings: {', '.join(missing)}")
        if self.domain.startswith("http"):
            raise ValueError("Atlassian domain must be a host name, not a URL")

    @property
    def is_configured(self) -> bool:
        return True

    @staticmethod
    def from_settings(
        settings: Mapping[str, Any], env: Mapping[str, str] | None = None
    ) -> "AtlassianConfig | AtlassianUnconfigured":
        """Summary: Resolve Atlassian credentials from user settings, then the environment.

        Importance: User settings override deployment defaults, matching the desktop settings screen.
        Alternatives: Require environment variables only.
        """

        source = os.environ if env is None else env
        domain = settings.get("jiraDomain") or source.get("JIRA_DOMAIN") or ""
        email = settings.get("jiraEmail") or source.get("JIRA_EMAIL") or ""
        api_token = settings.get("jiraApiToken") or source.get("JIRA_API_TOKEN") or ""
        if not (domain and email and api_token):
            return UNCONFIGURED
        return AtlassianConfig(domain=domain, email=email, api_token=api_token)


@dataclass(frozen=True)
class AtlassianUnconfigured:
    """Summary: Tagged variant for missing Atlassian credentials."""

    @property
    def is_configured(self) -> bool:
        return False


UNCONFIGURED = AtlassianUnconfigured()


def load_defaults(path: Path) -> dict[str, str]:
    """Summary: Load configuration defaults from JSON.

    Importance: Ensures all variables exist in a single config file.
    Alternatives: Inline defaults in the AppConfig initializer.
    """

    if not path.exists():
        raise FileNotFoundError(f"Defaults file not found: {path}")
    return json.loads(path.read_text(encoding="utf-8"))


def load_dotenv(path: Path) -> None:
    """Summary: Load key-value pairs from a .env file into the environment.

    Importance: Keeps secrets out of code while supporting local workflows.
    Alternatives: Use python-dotenv or OS-specific secret stores.
    """

    if not path.exists():
        return
    for raw_line in path.read_text(encoding="utf-8").splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        os.environ.setdefault(key.strip(), value.strip().strip('"'))
