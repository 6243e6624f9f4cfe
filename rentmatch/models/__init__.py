from .base import Base
from .preferences import Preferences
from .property import Building, Property

__all__ = [
    "Base",
    "Preferences",
    "Building",
    "Property",
]
