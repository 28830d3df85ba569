from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from evnotify.domain.models import NotificationSettings, SubscriberPreference, parse_kinds


@dataclass(frozen=True)
class TcpClientConfig:
    """TCP client connection settings used by the events receiver."""
    host: str = "127.0.0.1"
    port: int = 9010
    timeout_s: float = 5.0
    reconnect_delay_s: float = 0.5


@dataclass(frozen=True)
class WebhookConfigData:
    """Mail relay webhook configuration (URL + auth)."""
    url: str
    auth_header: Optional[str] = None
    timeout_s: float = 3.0
    verify_tls: bool = True


@dataclass(frozen=True)
class ExecutorConfig:
    """Background pool used for subscriber lookups."""
    max_workers: int = 4


@dataclass(frozen=True)
class MailWorkerConfigData:
    """Mail worker queue and retry parameters."""
    max_queue: int = 2000
    retry_count: int = 3
    retry_backoff_s: float = 0.5
    drain_timeout_s: float = 30.0


@dataclass(frozen=True)
class AppConfig:
    """
    Root application configuration loaded from YAML.

    This is the single source of truth for runtime-tunable values so the
    service can be configured without rebuilding.
    """
    mail: NotificationSettings
    transport: TcpClientConfig
    executor: ExecutorConfig
    mail_worker: MailWorkerConfigData
    webhook: Optional[WebhookConfigData] = None
    subscribers: List[SubscriberPreference] = field(default_factory=list)
    log_level: str = "INFO"
    path: Optional[Path] = None


def read_yaml(path: Path) -> Dict[str, Any]:
    with path.open("r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError("config.yaml must contain a YAML mapping at the root")
    return data


def resolve_default_config_path() -> Path:
    """
    Resolve config.yaml location.

    Priority:
    1) EVNOTIFY_CONFIG env var if provided
    2) config.yaml next to the executable
    3) ./config.yaml in current working directory
    """
    import os
    import sys

    env = os.getenv("EVNOTIFY_CONFIG")
    if env:
        return Path(env).expanduser().resolve()

    # PyInstaller-friendly: executable directory
    exe_dir = Path(sys.executable).resolve().parent
    candidate = exe_dir / "config.yaml"
    if candidate.exists():
        return candidate

    return Path("config.yaml").resolve()


def parse_notification_settings(raw: Optional[Dict[str, Any]]) -> NotificationSettings:
    """
    Convert the ``mail`` section into :class:`NotificationSettings`.

    ``recipients`` may be a YAML list or a comma-separated string.

    Raises
    ------
    ValueError
        If a feature name is not a known event kind.
    """
    m = raw or {}
    recipients_raw = m.get("recipients") or []
    if isinstance(recipients_raw, str):
        recipients_raw = recipients_raw.split(",")
    recipients = tuple(str(r).strip() for r in recipients_raw if str(r).strip())

    return NotificationSettings(
        enabled=bool(m.get("enabled", False)),
        enabled_kinds=parse_kinds(m.get("features")),
        recipients=recipients,
    )


def parse_subscriber(item: Dict[str, Any]) -> SubscriberPreference:
    """
    Convert one ``subscribers`` entry into a :class:`SubscriberPreference`.

    Raises
    ------
    KeyError
        If ``id_tag`` is missing.
    ValueError
        If a notification name is not a known event kind.
    """
    email = item.get("email")
    if isinstance(email, list):
        email = ",".join(str(e) for e in email)

    return SubscriberPreference(
        id_tag=str(item["id_tag"]),
        enabled_kinds=parse_kinds(item.get("notifications")),
        email=str(email) if email is not None else None,
        first_name=item.get("first_name"),
        last_name=item.get("last_name"),
    )


def load_app_config(path: Optional[str] = None) -> AppConfig:
    """
    Load application configuration from YAML and convert into typed config objects.

    Parameters
    ----------
    path
        Explicit path to config.yaml. If None, uses default resolution.

    Returns
    -------
    AppConfig
        Parsed and validated configuration.

    Raises
    ------
    FileNotFoundError
        If config file does not exist.
    ValueError
        If required fields are missing or invalid.
    """
    cfg_path = Path(path).expanduser().resolve() if path else resolve_default_config_path()
    if not cfg_path.exists():
        raise FileNotFoundError(f"Config not found: {cfg_path}")

    raw = read_yaml(cfg_path)

    # ---- mail ----
    mail = parse_notification_settings(raw.get("mail"))

    # ---- transport ----
    t = (raw.get("transport") or {}).get("tcp_client", {}) or {}
    transport = TcpClientConfig(
        host=str(t.get("host", "127.0.0.1")),
        port=int(t.get("port", 9010)),
        timeout_s=float(t.get("timeout_s", 5.0)),
        reconnect_delay_s=float(t.get("reconnect_delay_s", 0.5)),
    )

    # ---- executor ----
    e = raw.get("executor") or {}
    executor = ExecutorConfig(max_workers=int(e.get("max_workers", 4)))
    if executor.max_workers < 1:
        raise ValueError("executor.max_workers must be >= 1")

    # ---- mail worker ----
    mw = raw.get("mail_worker") or {}
    mail_worker = MailWorkerConfigData(
        max_queue=int(mw.get("max_queue", 2000)),
        retry_count=int(mw.get("retry_count", 3)),
        retry_backoff_s=float(mw.get("retry_backoff_s", 0.5)),
        drain_timeout_s=float(mw.get("drain_timeout_s", 30.0)),
    )

    # ---- webhook (optional) ----
    webhook = None
    w = raw.get("webhook")
    if w:
        webhook = WebhookConfigData(
            url=str(w["url"]),
            auth_header=w.get("auth_header"),
            timeout_s=float(w.get("timeout_s", 3.0)),
            verify_tls=bool(w.get("verify_tls", True)),
        )

    # ---- subscribers ----
    subscribers = [parse_subscriber(item) for item in raw.get("subscribers") or []]

    # ---- logging ----
    log_level = str((raw.get("logging") or {}).get("level", "INFO")).upper()

    return AppConfig(
        mail=mail,
        transport=transport,
        executor=executor,
        mail_worker=mail_worker,
        webhook=webhook,
        subscribers=subscribers,
        log_level=log_level,
        path=cfg_path,
    )
