"""
n8n self-hoster - install and reconfigure n8n with PostgreSQL on Docker
"""

__version__ = "0.3.0"

from .core import N8NSelfHoster
from .errors import SelfHosterError

__all__ = ["N8NSelfHoster", "SelfHosterError"]
