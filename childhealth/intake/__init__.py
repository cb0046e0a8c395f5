from .factory import get_adapter

__all__ = ["get_adapter"]
