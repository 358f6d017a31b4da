import logging
import os
from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class Settings:
    app_table_name: str
    audit_table_name: Optional[str]
    history_table_name: str
    default_tenant_id: str
    region: str
    log_level: str
    max_workers: int
    audit_ttl_days: int
    execution_ttl_days: int
    require_last_known_state: bool
    sns_topic_arn: Optional[str]
    slack_webhook_url: Optional[str]
    teams_webhook_url: Optional[str]


def _env_str(environ, name, default=None):
    raw = environ.get(name)
    if raw is None:
        return default
    raw = raw.strip()
    return raw if raw else default


def _env_bool(environ, name, default):
    raw = environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y"}


def _env_int(environ, name, default, minimum=None):
    raw = environ.get(name)
    try:
        value = int(str(raw).strip())
    except (TypeError, ValueError):
        return default
    if minimum is not None and value < minimum:
        value = minimum
    return value


def load_settings(environ=None):
    environ = os.environ if environ is None else environ

    app_table = _env_str(environ, "APP_TABLE_NAME", "cost-optimization-scheduler-app-table")
    region = (
        _env_str(environ, "AWS_REGION")
        or _env_str(environ, "AWS_DEFAULT_REGION")
        or "ap-south-1"
    )

    return Settings(
        app_table_name=app_table,
        audit_table_name=_env_str(environ, "AUDIT_TABLE_NAME", "cost-optimization-scheduler-audit-table"),
        history_table_name=_env_str(environ, "HISTORY_TABLE_NAME", app_table),
        default_tenant_id=_env_str(environ, "DEFAULT_TENANT_ID", "org-default"),
        region=region,
        log_level=_env_str(environ, "LOG_LEVEL", "INFO").upper(),
        max_workers=_env_int(environ, "MAX_WORKERS", 16, minimum=1),
        audit_ttl_days=_env_int(environ, "AUDIT_TTL_DAYS", 90, minimum=1),
        execution_ttl_days=_env_int(environ, "EXECUTION_TTL_DAYS", 30, minimum=1),
        require_last_known_state=_env_bool(environ, "REQUIRE_LAST_KNOWN_STATE", False),
        sns_topic_arn=_env_str(environ, "SNS_TOPIC_ARN"),
        slack_webhook_url=_env_str(environ, "SLACK_WEBHOOK_URL"),
        teams_webhook_url=_env_str(environ, "TEAMS_WEBHOOK_URL"),
    )


def configure_logging(settings):
    root = logging.getLogger()
    if not root.handlers:
        logging.basicConfig()
    level = getattr(logging, settings.log_level, logging.INFO)
    root.setLevel(level)
    return settings.log_level
