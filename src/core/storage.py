"""
Durable key-value store with two tiers
Session tier lives for one application run, persistent tier in SQLite
"""

import json
import logging
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

from sqlalchemy import create_engine, select, delete
from sqlalchemy.engine import make_url
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from src.core.models import Base, KeyValueEntryDB, utcnow

logger = logging.getLogger(__name__)


class StorageTier(Enum):
    """Storage tiers"""
    SESSION = "session"
    PERSISTENT = "persistent"


class DurableStore:
    """Uniform get/set/remove over the session and persistent tiers.

    Values are JSON-serialized on write and parsed on read. A value that
    fails to parse is logged and reported as absent.
    """

    def __init__(self, database_url: str = "sqlite:///./data/offline.db"):
        self.database_url = database_url
        self._ensure_parent_dir(database_url)

        self.engine = create_engine(
            database_url,
            echo=False,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False}
        )
        Base.metadata.create_all(self.engine, tables=[KeyValueEntryDB.__table__])

        self.SessionLocal = sessionmaker(bind=self.engine, expire_on_commit=False)
        self._session_tier: Dict[str, str] = {}

        logger.info(f"Durable store initialized: {database_url}")

    @staticmethod
    def _ensure_parent_dir(database_url: str):
        database = make_url(database_url).database
        if database and database != ":memory:":
            Path(database).parent.mkdir(parents=True, exist_ok=True)

    def get(self, tier: StorageTier, key: str, default: Any = None) -> Any:
        """Read and parse a value; absent or corrupted values yield default"""
        raw = self.get_raw(tier, key)
        if raw is None:
            return default

        try:
            return json.loads(raw)
        except (ValueError, TypeError) as e:
            logger.warning(f"Discarding corrupted {tier.value} record '{key}': {e}")
            return default

    def set(self, tier: StorageTier, key: str, value: Any):
        """Serialize and write a value, replacing any previous one"""
        self.set_raw(tier, key, json.dumps(value, ensure_ascii=False))

    def remove(self, tier: StorageTier, key: str):
        """Remove a key; removing an absent key is a no-op"""
        if tier is StorageTier.SESSION:
            self._session_tier.pop(key, None)
            return

        with self.SessionLocal() as session:
            session.execute(
                delete(KeyValueEntryDB).where(
                    KeyValueEntryDB.tier == tier.value,
                    KeyValueEntryDB.key == key
                )
            )
            session.commit()

    def contains(self, tier: StorageTier, key: str) -> bool:
        return self.get_raw(tier, key) is not None

    def get_raw(self, tier: StorageTier, key: str) -> Optional[str]:
        """Read the stored text without parsing"""
        if tier is StorageTier.SESSION:
            return self._session_tier.get(key)

        with self.SessionLocal() as session:
            entry = session.get(KeyValueEntryDB, (tier.value, key))
            return entry.value if entry else None

    def set_raw(self, tier: StorageTier, key: str, text: str):
        """Write text as-is; one commit per write"""
        if tier is StorageTier.SESSION:
            self._session_tier[key] = text
            return

        with self.SessionLocal() as session:
            entry = session.get(KeyValueEntryDB, (tier.value, key))
            if entry:
                entry.value = text
                entry.updated_at = utcnow()
            else:
                session.add(KeyValueEntryDB(tier=tier.value, key=key, value=text))
            session.commit()

    def keys(self, tier: StorageTier) -> List[str]:
        if tier is StorageTier.SESSION:
            return list(self._session_tier)

        with self.SessionLocal() as session:
            result = session.execute(
                select(KeyValueEntryDB.key).where(KeyValueEntryDB.tier == tier.value)
            )
            return [row[0] for row in result]

    def end_session(self):
        """Drop everything in the session tier"""
        self._session_tier.clear()

    def close(self):
        self.engine.dispose()
        logger.info("Durable store closed")
