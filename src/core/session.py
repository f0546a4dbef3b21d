"""
Session manager: login/logout transitions for online and offline use.
Keeps the session snapshot, credential, profile and cached role records
consistent and fires the resolver invalidation hook on each transition.
"""

import logging
from typing import Any, Dict, Optional

from src.core.backend_client import BackendClient, BackendError, AuthenticationFailed
from src.core.connectivity import ConnectivityMonitor
from src.core.models import OfflineUserProfile, ResolvedIdentity
from src.core.offline_auth import OfflineCredentialStore, OfflineProfileStore
from src.core.session_resolver import (
    SessionResolver, SESSION_STORAGE_KEY, ROLE_STORAGE_KEY, BRANCH_STORAGE_KEY
)
from src.core.storage import DurableStore, StorageTier

logger = logging.getLogger(__name__)


class LoginError(Exception):
    """Login could not be completed online or offline"""


class SessionManager:

    def __init__(self, store: DurableStore, credentials: OfflineCredentialStore,
                 profiles: OfflineProfileStore, resolver: SessionResolver,
                 backend: Optional[BackendClient] = None,
                 monitor: Optional[ConnectivityMonitor] = None):
        self.store = store
        self.credentials = credentials
        self.profiles = profiles
        self.resolver = resolver
        self.backend = backend
        self.monitor = monitor
        self._subject: Optional[Dict[str, Any]] = None

    @property
    def current_subject(self) -> Optional[Dict[str, Any]]:
        return self._subject

    @property
    def subject_id(self) -> Optional[str]:
        return self._subject.get('id') if self._subject else None

    def _is_online(self) -> bool:
        return self.backend is not None and (self.monitor is None or self.monitor.is_online)

    async def login(self, email: str, secret: str) -> OfflineUserProfile:
        """Online sign-in when reachable, stored credential otherwise"""
        profile = None
        if self._is_online():
            try:
                profile = await self._login_online(email, secret)
            except AuthenticationFailed:
                raise LoginError("Invalid login credentials")
            except BackendError as e:
                logger.warning(f"Online login unavailable, trying offline credential: {e}")

        if profile is None:
            profile = self._login_offline(email, secret)

        self._start_session(profile)
        return profile

    async def _login_online(self, email: str, secret: str) -> OfflineUserProfile:
        session = await self.backend.sign_in(email, secret)
        user = session.get('user') or {}
        metadata = user.get('user_metadata') or {}

        profile = OfflineUserProfile(
            id=user['id'],
            email=user.get('email') or email,
            full_name=metadata.get('full_name'),
            phone=metadata.get('phone') or user.get('phone') or None,
        )

        role = await self.backend.fetch_user_role(profile.id)
        if role:
            self.store.set(StorageTier.PERSISTENT, ROLE_STORAGE_KEY, role)
            profile.role = role.get('role')
            profile.branch_id = role.get('branch_id')

        self.credentials.save(email, secret)
        self.profiles.save_profile(profile)
        logger.info(f"Online login succeeded for {email}")
        return profile

    def _login_offline(self, email: str, secret: str) -> OfflineUserProfile:
        if not self.credentials.verify(email, secret):
            raise LoginError("Offline login rejected")

        profile = self.profiles.get_profile()
        if profile is None or profile.email != email:
            raise LoginError("No offline profile for this account")

        logger.info(f"Offline login succeeded for {email}")
        return profile

    def _start_session(self, profile: OfflineUserProfile):
        subject = {
            'id': profile.id,
            'email': profile.email,
            'user_metadata': {
                'full_name': profile.full_name,
                'role': profile.role,
                'branch_id': profile.branch_id,
            },
        }
        self.store.set(StorageTier.SESSION, SESSION_STORAGE_KEY, subject)
        self._subject = subject
        self.resolver.invalidate()

    def restore(self) -> Optional[Dict[str, Any]]:
        """Warm start from the session snapshot, else from the stored profile.

        The profile outlives logout, so it only counts while a credential
        record is still present.
        """
        subject = self.store.get(StorageTier.SESSION, SESSION_STORAGE_KEY)
        if isinstance(subject, dict) and subject.get('id'):
            self._subject = subject
            return subject

        if not self.credentials.exists():
            return None

        profile = self.profiles.get_profile()
        if profile is None:
            return None

        self._start_session(profile)
        return self._subject

    def logout(self):
        self.store.remove(StorageTier.SESSION, SESSION_STORAGE_KEY)
        self.credentials.clear()
        if self.backend:
            self.backend.sign_out()
        self._subject = None
        self.resolver.invalidate()
        logger.info("Logged out")

    def identity(self) -> Optional[ResolvedIdentity]:
        return self.resolver.resolve(self.subject_id)

    def set_branch(self, branch_id: str):
        """Record a branch assignment for the current user"""
        profile = self.profiles.get_profile()
        if profile is not None:
            profile.branch_id = branch_id
            self.profiles.save_profile(profile)
        self.store.set(StorageTier.PERSISTENT, BRANCH_STORAGE_KEY, branch_id)

        if self._subject:
            self._subject.setdefault('user_metadata', {})['branch_id'] = branch_id
            self.store.set(StorageTier.SESSION, SESSION_STORAGE_KEY, self._subject)
        self.resolver.invalidate()
        logger.info(f"Branch assignment set to {branch_id}")
