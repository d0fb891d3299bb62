"""Shared FastAPI dependencies for external collaborators.

Each factory is cached so one client is built per process; tests replace
them through ``app.dependency_overrides``.
"""

from functools import lru_cache

from usersvc.identity.keycloak import BaseIdentityProvider, get_keycloak_client
from usersvc.notifications.client import NotificationClient, get_notification_client
from usersvc.storage.s3 import BaseObjectStore, get_object_store as _get_object_store


@lru_cache
def get_identity_provider() -> BaseIdentityProvider:
    return get_keycloak_client()


@lru_cache
def get_object_store() -> BaseObjectStore:
    return _get_object_store()


@lru_cache
def get_notifier() -> NotificationClient:
    return get_notification_client()
