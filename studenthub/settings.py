"""
Locally configured user and system settings.

Stored values are merged over the defaults on every read, so a partial or
stale blob still yields a complete settings dict.
"""

import copy
from typing import Any, Dict

from studenthub.exceptions import ValidationError
from studenthub.logging_config import logger
from studenthub.storage import SYSTEM_SETTINGS_KEY, USER_SETTINGS_KEY, KeyValueStore

DEFAULT_USER_SETTINGS: Dict[str, Dict[str, Any]] = {
    "notifications": {
        "email": True,
        "push": True,
        "sms": False,
        "activities": True,
        "events": True,
        "certificates": True,
        "facultyMeetings": True,
    },
    "privacy": {
        "profileVisible": True,
        "activitiesVisible": True,
        "contactVisible": False,
    },
    "preferences": {
        "theme": "light",
        "language": "en",
        "timezone": "Asia/Kolkata",
        "dateFormat": "DD/MM/YYYY",
        "autoSave": True,
        "compactView": False,
    },
    "systemLimits": {
        "maxFileSize": 10,
        "sessionTimeout": 30,
        "maxUsers": 1000,
    },
}

DEFAULT_SYSTEM_SETTINGS: Dict[str, Any] = {
    "maintenanceMode": False,
    "registrationEnabled": True,
    "emailNotifications": True,
    "autoApproval": False,
    "maxFileSize": 10,
    "sessionTimeout": 30,
}


class SettingsManager:
    """Reads and writes the settings blobs in the key-value store"""

    def __init__(self, kv_store: KeyValueStore):
        self.kv_store = kv_store

    def _stored(self, key: str) -> Dict[str, Any]:
        value = self.kv_store.get(key)
        if value is None:
            return {}
        if not isinstance(value, dict):
            logger.warning(f"[Settings] Ignoring malformed '{key}' blob")
            return {}
        return value

    def get_user_settings(self) -> Dict[str, Dict[str, Any]]:
        settings = copy.deepcopy(DEFAULT_USER_SETTINGS)
        for category, values in self._stored(USER_SETTINGS_KEY).items():
            if isinstance(values, dict) and category in settings:
                settings[category].update(values)
        return settings

    def get_system_settings(self) -> Dict[str, Any]:
        return {**DEFAULT_SYSTEM_SETTINGS, **self._stored(SYSTEM_SETTINGS_KEY)}

    def update_user_setting(self, category: str, key: str, value: Any) -> Dict[str, Dict[str, Any]]:
        if category not in DEFAULT_USER_SETTINGS:
            raise ValidationError(f"Unknown settings category '{category}'", field=category)

        stored = self._stored(USER_SETTINGS_KEY)
        section = stored.get(category) if isinstance(stored.get(category), dict) else {}
        stored[category] = {**section, key: value}
        self.kv_store.set(USER_SETTINGS_KEY, stored)
        return self.get_user_settings()

    def update_system_setting(self, key: str, value: Any) -> Dict[str, Any]:
        stored = self._stored(SYSTEM_SETTINGS_KEY)
        stored[key] = value
        self.kv_store.set(SYSTEM_SETTINGS_KEY, stored)
        logger.info(f"[Settings] System setting {key} = {value!r}")
        return self.get_system_settings()

    def reset(self) -> None:
        self.kv_store.remove(USER_SETTINGS_KEY)
        self.kv_store.remove(SYSTEM_SETTINGS_KEY)
