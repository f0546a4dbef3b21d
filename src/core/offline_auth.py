"""
Offline credential and profile storage
Lets a previously authenticated user log in while the backend is unreachable.
The secret encoding is reversible base64, prototype grade only.
"""

import base64
import logging
from typing import Optional

from src.core.models import OfflineCredentialRecord, OfflineUserProfile
from src.core.storage import DurableStore, StorageTier

logger = logging.getLogger(__name__)

AUTH_STORAGE_KEY = "offline_auth_data"
USER_STORAGE_KEY = "offline_user_data"


def encode_secret(secret: str) -> str:
    """Weak reversible encoding, not a password hash"""
    return base64.b64encode(secret.encode('utf-8')).decode('ascii')


class OfflineCredentialStore:
    """Single last-known credential record"""

    def __init__(self, store: DurableStore):
        self.store = store

    def save(self, email: str, secret: str):
        record = OfflineCredentialRecord(email=email, hashed_secret=encode_secret(secret))
        self.store.set(StorageTier.PERSISTENT, AUTH_STORAGE_KEY, record.to_dict())
        logger.info(f"Offline credential saved for {email}")

    def load(self) -> Optional[OfflineCredentialRecord]:
        data = self.store.get(StorageTier.PERSISTENT, AUTH_STORAGE_KEY)
        if not data:
            return None
        try:
            return OfflineCredentialRecord.from_dict(data)
        except (KeyError, ValueError, TypeError) as e:
            logger.warning(f"Offline credential record unreadable: {e}")
            return None

    def verify(self, email: str, secret: str) -> bool:
        """True iff both email and encoded secret match the stored record"""
        record = self.load()
        if record is None:
            return False
        return record.email == email and record.hashed_secret == encode_secret(secret)

    def clear(self):
        """Remove the credential only; the profile record is kept"""
        self.store.remove(StorageTier.PERSISTENT, AUTH_STORAGE_KEY)
        logger.info("Offline credential cleared")

    def exists(self) -> bool:
        return self.store.contains(StorageTier.PERSISTENT, AUTH_STORAGE_KEY)


class OfflineProfileStore:
    """Last-known user profile, never cleared on logout"""

    def __init__(self, store: DurableStore):
        self.store = store

    def save_profile(self, profile: OfflineUserProfile):
        self.store.set(StorageTier.PERSISTENT, USER_STORAGE_KEY, profile.to_dict())

    def get_profile(self) -> Optional[OfflineUserProfile]:
        data = self.store.get(StorageTier.PERSISTENT, USER_STORAGE_KEY)
        if not data:
            return None
        try:
            return OfflineUserProfile.from_dict(data)
        except (KeyError, ValueError, TypeError) as e:
            logger.warning(f"Offline profile record unreadable: {e}")
            return None
