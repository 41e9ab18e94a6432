from src.models.base import Base
from src.models.token import Token

__all__ = [
    "Base",
    "Token",
]
