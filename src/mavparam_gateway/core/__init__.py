"""Core application functionality."""

from mavparam_gateway.core.cache import ParameterCache
from mavparam_gateway.core.config import Settings, setup_logging
from mavparam_gateway.core.events import EventChannel
from mavparam_gateway.core.models import ConnectionSettings, ConnectionType, Parameter

__all__ = [
    "ConnectionSettings",
    "ConnectionType",
    "EventChannel",
    "Parameter",
    "ParameterCache",
    "Settings",
    "setup_logging",
]
