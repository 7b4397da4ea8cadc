from .credential import Credential
from .manager import TokenManager

__all__ = [
    "Credential",
    "TokenManager",
]
