"""
Notification settings providers.

The dispatcher asks its provider for a settings snapshot on every event and
never keeps one, so changes made by administration take effect with the
next event.
"""

from __future__ import annotations

import threading
from pathlib import Path
from typing import Protocol

from evnotify.core.config.yaml_config import parse_notification_settings, read_yaml
from evnotify.domain.models import NotificationSettings


class SettingsProvider(Protocol):
    """
    Protocol interface for reading the current operator settings.
    """

    def get_settings(self) -> NotificationSettings:
        ...


class StaticSettingsProvider:
    """
    In-memory settings holder.

    Administration code replaces the snapshot with :meth:`update`; readers
    always get the latest one.
    """

    def __init__(self, settings: NotificationSettings | None = None):
        self._settings = settings or NotificationSettings()
        self._lock = threading.Lock()

    def get_settings(self) -> NotificationSettings:
        with self._lock:
            return self._settings

    def update(self, settings: NotificationSettings) -> None:
        with self._lock:
            self._settings = settings


class YamlSettingsProvider:
    """
    Settings provider reading the ``mail`` section of a YAML file.

    The file is read on every call, so edits on disk apply to the next event.

    Parameters
    ----------
    path
        Path to the configuration file.

    Raises
    ------
    FileNotFoundError, ValueError
        From :meth:`get_settings` if the file is missing or malformed.
    """

    def __init__(self, path: Path | str):
        self._path = Path(path)

    def get_settings(self) -> NotificationSettings:
        raw = read_yaml(self._path)
        return parse_notification_settings(raw.get("mail"))
