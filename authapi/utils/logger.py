"""
Logging utilities for the Auth API

Provides centralized logging configuration plus request and audit loggers.
"""

import copy
import os
import logging
import logging.config
from typing import Optional, Dict, Any

import yaml

# Default logging configuration
DEFAULT_LOGGING_CONFIG = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'default': {
            'format': '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
            'datefmt': '%Y-%m-%d %H:%M:%S'
        },
        'detailed': {
            'format': '%(asctime)s - %(name)s - %(levelname)s - %(module)s - %(funcName)s - %(lineno)d - %(message)s',
            'datefmt': '%Y-%m-%d %H:%M:%S'
        },
        'json': {
            'format': '{"timestamp": "%(asctime)s", "logger": "%(name)s", "level": "%(levelname)s", "module": "%(module)s", "function": "%(funcName)s", "line": %(lineno)d, "message": "%(message)s"}',
            'datefmt': '%Y-%m-%d %H:%M:%S'
        }
    },
    'handlers': {
        'console': {
            'class': 'logging.StreamHandler',
            'level': 'INFO',
            'formatter': 'default',
            'stream': 'ext://sys.stdout'
        }
    },
    'loggers': {
        'authapi': {
            'level': 'INFO',
            'handlers': ['console'],
            'propagate': False
        },
        'uvicorn': {
            'level': 'INFO',
            'handlers': ['console'],
            'propagate': False
        }
    },
    'root': {
        'level': 'WARNING',
        'handlers': ['console']
    },
    # Environment-specific overrides, merged by setup_logging()
    'production': {
        'loggers': {
            'authapi': {
                'level': 'INFO',
                'handlers': ['console'],
                'propagate': False
            }
        }
    },
    'development': {
        'loggers': {
            'authapi': {
                'level': 'DEBUG',
                'handlers': ['console'],
                'propagate': False
            }
        }
    }
}

ENVIRONMENT_SECTIONS = ('production', 'development', 'testing')


def load_logging_config(config_path: Optional[str] = None) -> Dict[str, Any]:
    """
    Load logging configuration from a YAML file, falling back to the default

    Args:
        config_path: Path to a YAML logging configuration file

    Returns:
        dict: dictConfig-compatible configuration
    """
    if config_path and os.path.exists(config_path):
        try:
            with open(config_path, 'r') as f:
                config = yaml.safe_load(f)
            if isinstance(config, dict):
                return config
            logging.getLogger(__name__).warning(
                f"Logging config {config_path} is not a mapping, using defaults"
            )
        except (OSError, yaml.YAMLError) as e:
            logging.getLogger(__name__).warning(
                f"Failed to load logging config from {config_path}: {e}"
            )

    return copy.deepcopy(DEFAULT_LOGGING_CONFIG)


def setup_logging(
    config_path: Optional[str] = None,
    log_level: Optional[str] = None,
    log_format: Optional[str] = None,
    environment: Optional[str] = None
) -> Dict[str, Any]:
    """
    Setup logging configuration

    Args:
        config_path: Path to logging configuration file
        log_level: Override log level
        log_format: Override log format ('default', 'detailed', 'json')
        environment: Environment name whose overrides should be merged

    Returns:
        dict: The configuration that was applied
    """
    config = load_logging_config(config_path)

    # Apply environment-specific overrides
    environment = environment or os.getenv('ENVIRONMENT', 'development')
    env_config = config.get(environment)
    if isinstance(env_config, dict):
        if 'handlers' in env_config:
            config.setdefault('handlers', {}).update(env_config['handlers'])
        if 'loggers' in env_config:
            config.setdefault('loggers', {}).update(
                copy.deepcopy(env_config['loggers'])
            )

    for section in ENVIRONMENT_SECTIONS:
        config.pop(section, None)

    # Override log level if specified
    if log_level:
        log_level = log_level.upper()
        for logger_config in config.get('loggers', {}).values():
            logger_config['level'] = log_level
        for handler_config in config.get('handlers', {}).values():
            handler_config['level'] = log_level

    # Override log format if specified
    if log_format and log_format in config.get('formatters', {}):
        for handler_config in config.get('handlers', {}).values():
            handler_config['formatter'] = log_format

    logging.config.dictConfig(config)
    logging.getLogger(__name__).debug(
        f"Logging configured for environment: {environment}"
    )
    return config


class RequestLogger:
    """One access-log line per HTTP request"""

    def __init__(self, name: str = "authapi.requests"):
        self.logger = logging.getLogger(name)

    def log_request(
        self,
        method: str,
        path: str,
        status_code: int,
        duration: float,
        client_ip: Optional[str] = None,
        user_agent: Optional[str] = None
    ):
        level = logging.WARNING if status_code >= 500 else logging.INFO
        self.logger.log(
            level,
            f"{method} {path} {status_code} {duration * 1000:.1f}ms",
            extra={
                'http': {
                    'method': method,
                    'path': path,
                    'status': status_code,
                    'duration_ms': round(duration * 1000, 1),
                    'client_ip': client_ip,
                    'user_agent': user_agent,
                }
            }
        )


class AuditLogger:
    """
    Audit trail for authentication and user administration

    Sign in events are keyed by email; admin actions by the acting admin's id
    and the target user's id.
    """

    def __init__(self, name: str = "authapi.audit"):
        self.logger = logging.getLogger(name)

    def log_auth_event(self, event: str, email: str, provider: Optional[str] = None):
        """Record sign up, sign in, OAuth sign in or sign out"""
        self.logger.info(
            f"auth.{event} email={email}" + (f" provider={provider}" if provider else ""),
            extra={'audit': {'event': f"auth.{event}", 'email': email, 'provider': provider}}
        )

    def log_admin_action(
        self,
        actor_id: str,
        action: str,
        target_user_id: str,
        changes: Optional[Dict[str, Any]] = None
    ):
        """Record an admin changing or removing another user"""
        self.logger.info(
            f"admin.{action} actor={actor_id} target={target_user_id}",
            extra={
                'audit': {
                    'event': f"admin.{action}",
                    'actor_id': actor_id,
                    'target_user_id': target_user_id,
                    'changes': changes or {},
                }
            }
        )


def get_request_logger() -> RequestLogger:
    return RequestLogger()


def get_audit_logger() -> AuditLogger:
    return AuditLogger()
