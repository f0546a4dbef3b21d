"""
Configuration loader for the offline sync service
"""

import os
import yaml
import logging
from pathlib import Path
from typing import Dict, Any, Optional

from dotenv import load_dotenv


logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path('config/offline.yaml')


def default_config() -> Dict[str, Any]:
    return {
        'storage': {
            'url': 'sqlite:///./data/offline.db',
            'cache_url': 'sqlite+aiosqlite:///./data/offline.db'
        },
        'backend': {
            'base_url': 'http://localhost:54321',
            'api_key': '',
            'timeout_seconds': 30,
            'role_lookup_timeout_seconds': 2
        },
        'queue': {
            'max_attempts': 3
        },
        'connectivity': {
            'reconnect_grace_seconds': 2,
            'heartbeat_interval_seconds': 300,  # 5 minutes
            'probe_enabled': True,
            'probe_interval_seconds': 10,
            'drain_timeout_seconds': 10
        },
        'cache': {
            'app_name': 'branch-gear',
            'version': 3,
            'origin': 'http://localhost:5173',
            'entry_page': '/index.html',
            'offline_page': '/offline.html',
            'shell_manifest': ['/', '/index.html', '/offline.html'],
            'api_prefixes': ['/rest/v1/', '/auth/v1/']
        },
        'api': {
            'host': '127.0.0.1',
            'port': 8080,
            'api_key': 'development-key-change-in-production',
            'cors_origins': ['*']
        },
        'host': {
            'platform': None,
            'name': '',
            'version': ''
        },
        'logging': {
            'level': 'INFO',
            'file': 'logs/offline.log',
            'json': False
        }
    }


def load_config(path: Optional[Path] = None) -> Dict[str, Any]:
    """Load configuration from defaults, YAML file and environment"""

    load_dotenv()

    config = default_config()

    yaml_path = Path(path) if path else DEFAULT_CONFIG_PATH
    if yaml_path.exists():
        try:
            with open(yaml_path, 'r', encoding='utf-8') as f:
                yaml_config = yaml.safe_load(f)
                if yaml_config:
                    _deep_update(config, yaml_config)
                    logger.info(f"Configuration loaded from {yaml_path}")
        except (OSError, yaml.YAMLError) as e:
            logger.error(f"Failed to load configuration from {yaml_path}: {e}")
            logger.error("Using default configuration")
    else:
        logger.warning(f"Configuration file {yaml_path} not found, using defaults")

    _apply_env_overrides(config)

    logger.info("Configuration loaded successfully")
    return config


def _apply_env_overrides(config: Dict[str, Any]):
    if os.getenv('OFFLINE_BACKEND_URL'):
        config['backend']['base_url'] = os.getenv('OFFLINE_BACKEND_URL')

    if os.getenv('OFFLINE_BACKEND_API_KEY'):
        config['backend']['api_key'] = os.getenv('OFFLINE_BACKEND_API_KEY')

    if os.getenv('OFFLINE_API_KEY'):
        config['api']['api_key'] = os.getenv('OFFLINE_API_KEY')

    if os.getenv('OFFLINE_STORAGE_URL'):
        config['storage']['url'] = os.getenv('OFFLINE_STORAGE_URL')

    if os.getenv('OFFLINE_CACHE_URL'):
        config['storage']['cache_url'] = os.getenv('OFFLINE_CACHE_URL')

    if os.getenv('OFFLINE_MAX_ATTEMPTS'):
        try:
            config['queue']['max_attempts'] = int(os.getenv('OFFLINE_MAX_ATTEMPTS'))
        except ValueError:
            logger.error("OFFLINE_MAX_ATTEMPTS must be an integer, keeping configured value")

    if os.getenv('OFFLINE_CACHE_VERSION'):
        config['cache']['version'] = os.getenv('OFFLINE_CACHE_VERSION')

    if os.getenv('LOG_LEVEL'):
        config['logging']['level'] = os.getenv('LOG_LEVEL', 'INFO').upper()


def cache_bucket_name(config: Dict[str, Any]) -> str:
    """Version-suffixed bucket name, e.g. branch-gear-v3"""
    cache_config = config.get('cache', {})
    return f"{cache_config.get('app_name', 'app')}-v{cache_config.get('version', 1)}"


def _deep_update(base_dict: Dict[str, Any], update_dict: Dict[str, Any]) -> None:
    """Deep update nested dictionary"""
    for key, value in update_dict.items():
        if key in base_dict and isinstance(base_dict[key], dict) and isinstance(value, dict):
            _deep_update(base_dict[key], value)
        else:
            base_dict[key] = value
