"""
Core module - Contains configuration, logging, errors and the auth components.
"""

from portalauth.core.config import PortalConfig
from portalauth.core.logging import SecureLogFilter, configure_logging, get_secure_logger

__all__ = ["PortalConfig", "SecureLogFilter", "configure_logging", "get_secure_logger"]
