import os
from typing import Optional, Tuple


def _env_flag(name: str, default: str = 'false') -> bool:
    return os.environ.get(name, default).lower() in ('1', 'true', 'yes')


def _env_list(name: str, default: str, sep: str = ':') -> Tuple[str, ...]:
    raw = os.environ.get(name, default)
    return tuple(item for item in raw.split(sep) if item)


class Config:
    """Base configuration"""

    DEBUG = False

    # Destinations the engine refuses to rotate into (exact match)
    PROTECTED_PATHS = _env_list(
        'SNAPROTATE_PROTECTED_PATHS',
        '/:/bin:/boot:/dev:/etc:/home:/lib:/lib64:/opt:/proc:/root:/sbin:/srv:/sys:/tmp:/usr:/var'
    )

    # Data mover
    RSYNC_BINARY = os.environ.get('SNAPROTATE_RSYNC') or 'rsync'
    RSYNC_OPTIONS = tuple(
        (os.environ.get('SNAPROTATE_RSYNC_OPTIONS') or
         '-a --one-file-system --delete --delete-excluded').split()
    )
    TOLERATE_VANISHED = _env_flag('SNAPROTATE_TOLERATE_VANISHED')

    # SSH
    SSH_PORT = int(os.environ.get('SNAPROTATE_SSH_PORT', 22))
    SSH_KEY_FILE = os.environ.get('SNAPROTATE_SSH_KEY')
    SSH_TIMEOUT = int(os.environ.get('SNAPROTATE_SSH_TIMEOUT', 30))

    # Hooks are refused for root unless explicitly allowed
    ALLOW_ROOT_HOOKS = _env_flag('SNAPROTATE_ALLOW_ROOT_HOOKS')

    # Logging
    LOG_DIR = os.environ.get('SNAPROTATE_LOG_DIR')
    LOG_LEVEL = os.environ.get('SNAPROTATE_LOG_LEVEL', 'INFO')

    # Scheduler
    SCHEDULER_TIMEZONE = os.environ.get('SNAPROTATE_TIMEZONE')


class DevelopmentConfig(Config):
    """Development configuration"""
    DEBUG = True
    LOG_LEVEL = 'DEBUG'


class ProductionConfig(Config):
    """Production configuration"""
    DEBUG = False


# Configuration dictionary
config = {
    'development': DevelopmentConfig,
    'production': ProductionConfig,
    'default': ProductionConfig
}


def get_config(config_name: Optional[str] = None):
    """Return the configuration class selected by name or SNAPROTATE_ENV."""
    if config_name is None:
        config_name = os.environ.get('SNAPROTATE_ENV', 'default')
    return config.get(config_name, config['default'])


