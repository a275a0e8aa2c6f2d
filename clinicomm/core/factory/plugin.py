"""
Plugin protocol for the clinicomm application factory.
"""

from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from fastapi import FastAPI

    from .builder import ClinicommBuilder


class ClinicommPlugin(Protocol):
    """
    Interface every plugin added to ClinicommBuilder implements.

    1. configure: called while building, registers middleware, routers and hooks
    2. startup: called during application startup
    3. shutdown: called during application shutdown
    """

    def configure(self, builder: "ClinicommBuilder") -> None:
        """
        Register components with the builder.

        Synchronous because it only registers things; connections and other
        async resources belong in startup().
        """
        ...

    async def startup(self, app: "FastAPI") -> None:
        """Open connections and publish services on app.state."""
        ...

    async def shutdown(self, app: "FastAPI") -> None:
        """Release whatever startup() acquired."""
        ...
