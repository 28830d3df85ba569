from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional

from evnotify.core.config.settings_provider import (
    SettingsProvider,
    StaticSettingsProvider,
    YamlSettingsProvider,
)
from evnotify.core.config.yaml_config import AppConfig, load_app_config
from evnotify.core.notify.dispatcher import Dispatcher
from evnotify.core.notify.resolver import RecipientResolver
from evnotify.core.state.session_store import InMemorySessionStore
from evnotify.core.state.subscriber_store import InMemorySubscriberStore
from evnotify.notification.base import MailTransport
from evnotify.notification.mail_thread import MailThreadConfig, MailWorkerThread
from evnotify.notification.webhook_transport import LogMailTransport, WebhookConfig, WebhookMailTransport
from evnotify.runtime.app_runtime import AppRuntime
from evnotify.runtime.event_bus import EventBus
from evnotify.runtime.executor import ThreadPoolGateway
from evnotify.runtime.session_recorder import SessionRecorder


@dataclass(frozen=True)
class AppWiring:
    """Everything the entry point needs to run the service."""
    config: AppConfig
    sessions: InMemorySessionStore
    subscribers: InMemorySubscriberStore
    mailer: MailWorkerThread
    dispatcher: Dispatcher
    runtime: AppRuntime


def build_transports(cfg: AppConfig) -> List[MailTransport]:
    if cfg.webhook is None:
        return [LogMailTransport()]

    auth_header = cfg.webhook.auth_header
    if auth_header and not auth_header.startswith("Bearer "):
        auth_header = f"Bearer {auth_header}"

    return [
        WebhookMailTransport(
            WebhookConfig(
                url=cfg.webhook.url,
                auth_header=auth_header,
                timeout_s=cfg.webhook.timeout_s,
                verify_tls=cfg.webhook.verify_tls,
            )
        )
    ]


def build_mailer(cfg: AppConfig, settings: SettingsProvider) -> MailWorkerThread:
    return MailWorkerThread(
        transports=build_transports(cfg),
        settings=settings,
        cfg=MailThreadConfig(
            max_queue=cfg.mail_worker.max_queue,
            retry_count=cfg.mail_worker.retry_count,
            retry_backoff_s=cfg.mail_worker.retry_backoff_s,
            drain_timeout_s=cfg.mail_worker.drain_timeout_s,
        ),
    )


def build_app_system(config_path: Optional[str] = None) -> AppWiring:
    cfg = load_app_config(config_path)

    # --- SETTINGS (re-read from disk per event) ---
    settings: SettingsProvider
    if cfg.path is not None:
        settings = YamlSettingsProvider(cfg.path)
    else:
        settings = StaticSettingsProvider(cfg.mail)

    # --- STATE ---
    sessions = InMemorySessionStore()
    subscribers = InMemorySubscriberStore()
    subscribers.load(cfg.subscribers)

    # --- MAIL ---
    mailer = build_mailer(cfg, settings)
    mailer.start()

    # --- DISPATCH ---
    executor = ThreadPoolGateway(max_workers=cfg.executor.max_workers)
    dispatcher = Dispatcher(
        settings=settings,
        mail=mailer,
        resolver=RecipientResolver(sessions=sessions, subscribers=subscribers),
        executor=executor,
    )

    # --- RUNTIME ---
    runtime = AppRuntime(
        events=cfg.transport,
        dispatcher=dispatcher,
        bus=EventBus(),
        executor=executor,
        recorder=SessionRecorder(store=sessions),
    )

    return AppWiring(
        config=cfg,
        sessions=sessions,
        subscribers=subscribers,
        mailer=mailer,
        dispatcher=dispatcher,
        runtime=runtime,
    )
