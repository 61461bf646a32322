"""
Student Hub - client-side data layer for the student activity hub

    from studenthub import EntityStore, HubConfig

    async with EntityStore.from_config(HubConfig.load_default()) as store:
        store.get_statistics()
"""

__version__ = "1.0.0"

from studenthub.config import HubConfig
from studenthub.events import ChangeType, SubscriptionBus
from studenthub.models import Collection, ReadResult
from studenthub.store import EntityStore
from studenthub.binding import StoreBinding
from studenthub.auth import AuthSession
from studenthub.settings import SettingsManager

__all__ = [
    "HubConfig",
    "ChangeType",
    "SubscriptionBus",
    "Collection",
    "ReadResult",
    "EntityStore",
    "StoreBinding",
    "AuthSession",
    "SettingsManager",
]
