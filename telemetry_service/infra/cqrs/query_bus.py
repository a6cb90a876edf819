# =============================================================================
# File: telemetry_service/infra/cqrs/query_bus.py
# Description: Query Bus with handler factories and a middleware pipeline
# =============================================================================

import logging
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Dict, List, Type

from pydantic import BaseModel

log = logging.getLogger("telemetry.cqrs.query")


# =============================================================================
# Base Classes
# =============================================================================

class Query(BaseModel):
    """Base class for all queries using Pydantic v2"""
    pass


class IQueryHandler(ABC):
    """Base class for all query handlers"""

    @abstractmethod
    async def handle(self, query: Query) -> Any:
        """Handle the query and return result."""
        pass


# =============================================================================
# Middleware Support (Query-specific)
# =============================================================================

class QueryMiddleware(ABC):
    """Base middleware class for queries"""

    @abstractmethod
    async def process(
            self,
            query: Any,
            next_handler: Callable[[Any], Awaitable[Any]]
    ) -> Any:
        """Process query and call next handler"""
        pass


class QueryLoggingMiddleware(QueryMiddleware):
    """Logs all queries"""

    async def process(self, query: Any, next_handler: Callable) -> Any:
        query_type = type(query).__name__
        log.debug(f"Processing query {query_type}")

        try:
            result = await next_handler(query)
            log.debug(f"Query {query_type} completed successfully")
            return result
        except Exception as e:
            log.error(f"Query {query_type} failed: {e}")
            raise


# =============================================================================
# Query Bus Implementation
# =============================================================================

class QueryBus:
    """Query Bus: one handler per query type, middleware wrapped around it."""

    def __init__(self):
        self._handlers: Dict[Type[Query], IQueryHandler] = {}
        self._handler_factories: Dict[Type[Query], Callable[[], IQueryHandler]] = {}
        self._middleware: List[QueryMiddleware] = [QueryLoggingMiddleware()]

    def use(self, middleware: QueryMiddleware) -> 'QueryBus':
        self._middleware.append(middleware)
        return self

    def register_handler(
            self,
            query_type: Type[Query],
            handler_factory: Callable[[], IQueryHandler]
    ) -> None:
        existing_factory = self._handler_factories.get(query_type)
        if existing_factory is not None and existing_factory != handler_factory:
            raise ValueError(f"Duplicate query handler for '{query_type.__name__}'")

        self._handler_factories[query_type] = handler_factory
        log.debug(f"Registered handler for {query_type.__name__}")

    async def query(self, query: Query) -> Any:
        """Execute a query through the middleware pipeline."""
        query_type = type(query)

        if query_type not in self._handlers:
            factory = self._handler_factories.get(query_type)
            if not factory:
                raise ValueError(f"No handler registered for {query_type.__name__}")
            self._handlers[query_type] = factory()

        final_handler = self._handlers[query_type]

        async def handler_wrapper(q):
            return await final_handler.handle(q)

        chain = handler_wrapper
        for middleware in reversed(self._middleware):
            current_chain = chain

            async def wrapped(q, mw=middleware, next_h=current_chain):
                return await mw.process(q, next_h)

            chain = wrapped

        return await chain(query)

    def get_handler_info(self) -> Dict[str, Any]:
        return {
            "handlers": sorted(t.__name__ for t in self._handler_factories),
            "total_handlers": len(self._handler_factories),
        }
