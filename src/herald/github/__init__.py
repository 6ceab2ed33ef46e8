from herald.github.api import API

__all__ = ["API"]
