"""Router that answers with and without a trailing slash instead of redirecting."""

from typing import Any, Callable

from fastapi import APIRouter
from fastapi.types import DecoratedCallable


class TrailingSlashRouter(APIRouter):
    """Registers every route twice: `/path` in the schema and a hidden `/path/`."""

    def api_route(
        self, path: str, *, include_in_schema: bool = True, **kwargs: Any
    ) -> Callable[[DecoratedCallable], DecoratedCallable]:
        """Register `path` without its trailing slash, plus the slashed alias."""
        bare = path.rstrip("/")
        register = super().api_route(bare, include_in_schema=include_in_schema, **kwargs)
        register_alias = super().api_route(f"{bare}/", include_in_schema=False, **kwargs)

        def decorator(func: DecoratedCallable) -> DecoratedCallable:
            register_alias(func)
            return register(func)

        return decorator
