"""HTTP surface of the roadmap workflow engine."""

from .endpoints import router, init_dependencies

__all__ = ["router", "init_dependencies"]
