# users/views/__init__.py
from .me import MeView

__all__ = ["MeView"]
