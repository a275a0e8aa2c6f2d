from .builder import ClinicommBuilder
from .plugin import ClinicommPlugin

__all__ = ["ClinicommBuilder", "ClinicommPlugin"]
