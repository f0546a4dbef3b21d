"""
Cascading identity resolver

Reconstructs the active user's role and branch assignment from local
storage when the live session is cold. Precedence lives in
``DEFAULT_STRATEGIES``: each strategy maps a storage snapshot to a partial
identity, and ``fold_strategies`` stops at the first branch assignment.

Resolution runs once per authenticated subject. The result is cached until
the subject changes or ``invalidate()`` is fired by a login/logout.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from src.core.models import ResolvedIdentity
from src.core.offline_auth import USER_STORAGE_KEY
from src.core.storage import DurableStore, StorageTier

logger = logging.getLogger(__name__)

SESSION_STORAGE_KEY = "offline_session"
ROLE_STORAGE_KEY = "user_role"
BRANCH_STORAGE_KEY = "user_branch_id"


@dataclass(frozen=True)
class StorageSnapshot:
    """Raw records read once per resolution"""
    session_record: Optional[Dict[str, Any]] = None
    profile: Optional[Dict[str, Any]] = None
    role_record: Optional[Dict[str, Any]] = None
    branch_record: Optional[str] = None

    @classmethod
    def capture(cls, store: DurableStore) -> 'StorageSnapshot':
        return cls(
            session_record=_as_dict(store.get(StorageTier.SESSION, SESSION_STORAGE_KEY)),
            profile=_as_dict(store.get(StorageTier.PERSISTENT, USER_STORAGE_KEY)),
            role_record=_as_dict(store.get(StorageTier.PERSISTENT, ROLE_STORAGE_KEY)),
            branch_record=_as_text(store.get(StorageTier.PERSISTENT, BRANCH_STORAGE_KEY)),
        )


def _as_dict(value: Any) -> Optional[Dict[str, Any]]:
    return value if isinstance(value, dict) else None


def _as_text(value: Any) -> Optional[str]:
    return value if isinstance(value, str) and value else None


def _identity(role: Any, branch_id: Any) -> Optional[ResolvedIdentity]:
    identity = ResolvedIdentity(role=role or None, branch_id=branch_id or None)
    return None if identity.is_empty else identity


Strategy = Callable[[StorageSnapshot], Optional[ResolvedIdentity]]


def from_session_record(snapshot: StorageSnapshot) -> Optional[ResolvedIdentity]:
    """Session-scoped snapshot, only when it carries a branch"""
    if not snapshot.session_record:
        return None
    metadata = _as_dict(snapshot.session_record.get('user_metadata')) or {}
    if not metadata.get('branch_id'):
        return None
    return _identity(metadata.get('role'), metadata.get('branch_id'))


def from_profile_with_branch(snapshot: StorageSnapshot) -> Optional[ResolvedIdentity]:
    if not snapshot.profile or not snapshot.profile.get('branch_id'):
        return None
    return _identity(snapshot.profile.get('role'), snapshot.profile.get('branch_id'))


def from_cached_role(snapshot: StorageSnapshot) -> Optional[ResolvedIdentity]:
    """Cached role record, backfilled with the profile branch if it lacks one"""
    if not snapshot.role_record:
        return None
    branch_id = snapshot.role_record.get('branch_id')
    if not branch_id and snapshot.profile:
        branch_id = snapshot.profile.get('branch_id')
    return _identity(snapshot.role_record.get('role'), branch_id)


def from_profile_partial(snapshot: StorageSnapshot) -> Optional[ResolvedIdentity]:
    if not snapshot.profile:
        return None
    return _identity(snapshot.profile.get('role'), snapshot.profile.get('branch_id'))


def from_branch_record(snapshot: StorageSnapshot) -> Optional[ResolvedIdentity]:
    return _identity(None, snapshot.branch_record)


DEFAULT_STRATEGIES: Tuple[Strategy, ...] = (
    from_session_record,
    from_profile_with_branch,
    from_cached_role,
    from_profile_partial,
    from_branch_record,
)


def fold_strategies(snapshot: StorageSnapshot,
                    strategies: Sequence[Strategy] = DEFAULT_STRATEGIES) -> ResolvedIdentity:
    """Consult strategies in order until one yields a branch assignment.

    Partial results are merged field by field, earlier tiers winning.
    """
    result = ResolvedIdentity()
    for strategy in strategies:
        if result.has_branch:
            break
        candidate = strategy(snapshot)
        if candidate is None:
            continue
        result = result.merged_with(candidate)
        logger.debug(f"Identity after {strategy.__name__}: {result}")
    return result


class ResolutionState(Enum):
    UNRESOLVED = "unresolved"
    RESOLVED = "resolved"
    CLEARED = "cleared"


@dataclass(frozen=True)
class IdentityCacheEntry:
    state: ResolutionState = ResolutionState.UNRESOLVED
    subject_id: Optional[str] = None
    identity: Optional[ResolvedIdentity] = None


class SessionResolver:
    """Memoized, per-subject identity resolution"""

    def __init__(self, store: DurableStore, strategies: Sequence[Strategy] = DEFAULT_STRATEGIES):
        self.store = store
        self.strategies: List[Strategy] = list(strategies)
        self._entry = IdentityCacheEntry()

    @property
    def state(self) -> ResolutionState:
        return self._entry.state

    @property
    def identity(self) -> Optional[ResolvedIdentity]:
        return self._entry.identity

    def resolve(self, subject_id: Optional[str]) -> Optional[ResolvedIdentity]:
        """Resolved identity for ``subject_id``; None when unauthenticated"""
        if not subject_id:
            if self._entry.state is ResolutionState.RESOLVED:
                self.invalidate()
            return None

        entry = self._entry
        if entry.state is ResolutionState.RESOLVED and entry.subject_id == subject_id:
            return entry.identity

        snapshot = StorageSnapshot.capture(self.store)
        identity = fold_strategies(snapshot, self.strategies)
        self._entry = IdentityCacheEntry(ResolutionState.RESOLVED, subject_id, identity)

        if not identity.has_branch:
            logger.warning(f"No branch assignment found for subject {subject_id}")
        else:
            logger.info(f"Identity resolved for subject {subject_id}: role={identity.role}")
        return identity

    def invalidate(self):
        """Invalidation hook fired on login/logout transitions"""
        self._entry = IdentityCacheEntry(ResolutionState.CLEARED)
        logger.debug("Resolved identity cleared")
