"""
Host capability: information exposed by a desktop shell when the
application runs hosted. ``NullHost`` stands in when there is none.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


class HostCapability(ABC):
    """Interface for the optional hosting shell"""

    @property
    @abstractmethod
    def is_hosted(self) -> bool:
        """Whether a desktop shell hosts the application"""
        pass

    @property
    @abstractmethod
    def platform(self) -> str:
        pass

    @abstractmethod
    async def get_app_info(self) -> Optional[Dict[str, Any]]:
        """Name, version and platform reported by the host, None when unhosted"""
        pass


class NullHost(HostCapability):
    """Plain, unhosted runtime"""

    @property
    def is_hosted(self) -> bool:
        return False

    @property
    def platform(self) -> str:
        return "web"

    async def get_app_info(self) -> Optional[Dict[str, Any]]:
        return None


class StaticHost(HostCapability):
    """Host described by configuration"""

    def __init__(self, platform: str, name: str = "", version: str = ""):
        self._platform = platform
        self.name = name
        self.version = version

    @property
    def is_hosted(self) -> bool:
        return True

    @property
    def platform(self) -> str:
        return self._platform

    async def get_app_info(self) -> Optional[Dict[str, Any]]:
        return {'name': self.name, 'version': self.version, 'platform': self._platform}


def host_from_config(config: Dict[str, Any]) -> HostCapability:
    host_config = config.get('host') or {}
    if not host_config.get('platform'):
        return NullHost()

    host = StaticHost(
        platform=host_config['platform'],
        name=host_config.get('name', ''),
        version=str(host_config.get('version', ''))
    )
    logger.info(f"Running hosted on {host.platform}")
    return host
