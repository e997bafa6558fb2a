"""Data-collection consent and the anonymous user id."""

from __future__ import annotations

import uuid
from typing import Literal, cast

import structlog

from crowdcode.host import KeyValueStore

logger = structlog.get_logger()

ConsentStatus = Literal["pending", "accepted", "declined"]

CONSENT_KEY = "dataCollectionConsent"
USER_ID_KEY = "userId"

_STATUS_MESSAGES: dict[ConsentStatus, str] = {
    "accepted": "Data collection enabled",
    "declined": "Data collection disabled",
    "pending": "Data collection pending",
}


class ConsentManager:
    """Reads and updates consent in the host's key-value store."""

    def __init__(self, store: KeyValueStore) -> None:
        self._store = store

    def status(self) -> ConsentStatus:
        value = self._store.get(CONSENT_KEY, "pending")
        if value not in _STATUS_MESSAGES:
            return "pending"
        return cast(ConsentStatus, value)

    def set_status(self, status: ConsentStatus) -> None:
        self._store.set(CONSENT_KEY, status)
        logger.info("consent_updated", status=status)

    def has_consent(self) -> bool:
        return self.status() == "accepted"

    def status_message(self) -> str:
        return _STATUS_MESSAGES[self.status()]

    def user_id(self) -> str:
        """Anonymous id, generated once and then persisted."""
        user_id = self._store.get(USER_ID_KEY)
        if not user_id:
            user_id = str(uuid.uuid4())
            self._store.set(USER_ID_KEY, user_id)
        return str(user_id)
