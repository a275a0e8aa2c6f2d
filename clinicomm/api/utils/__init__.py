from .error_helpers import to_http_exception

__all__ = ["to_http_exception"]
