from . import health, repos

__all__ = ["health", "repos"]
