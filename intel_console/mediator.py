"""Request dispatch: one handler per concrete request type."""

from __future__ import annotations

from typing import Any, Dict, Iterable, Optional, Type

import structlog

from intel_console.contracts import (
    CreateAlertCommand,
    DeleteAlertCommand,
    GetAlertByIdQuery,
    GetAlertSummaryQuery,
    GetAllAlertsQuery,
    Request,
    UpdateAlertCommand,
)
from intel_console.db.repo import AlertRepository
from intel_console.errors import DuplicateHandlerError, HandlerNotRegisteredError, Result
from intel_console.handlers import Handler, alert_handlers

logger = structlog.get_logger(__name__)

ALERT_REQUEST_TYPES = (
    CreateAlertCommand,
    UpdateAlertCommand,
    DeleteAlertCommand,
    GetAllAlertsQuery,
    GetAlertByIdQuery,
    GetAlertSummaryQuery,
)


class Mediator:
    """
    Routes a request to the handler registered for its exact type.

    Holds no business logic. Registration mistakes raise immediately:
    a second handler for a type, or dispatching a type nobody handles.
    """

    def __init__(self) -> None:
        self._handlers: Dict[Type[Request], Handler[Any]] = {}

    def register(self, request_type: Type[Request], handler: Handler[Any]) -> None:
        if request_type in self._handlers:
            raise DuplicateHandlerError(request_type)
        self._handlers[request_type] = handler

    def register_handler(self, handler: Handler[Any]) -> None:
        self.register(handler.request_type, handler)

    def handler_for(self, request_type: Type[Request]) -> Optional[Handler[Any]]:
        return self._handlers.get(request_type)

    @property
    def registered_types(self) -> frozenset:
        return frozenset(self._handlers)

    def verify(self, request_types: Iterable[Type[Request]]) -> None:
        """Fail fast unless every listed request type has a handler."""
        for request_type in request_types:
            if request_type not in self._handlers:
                raise HandlerNotRegisteredError(request_type)

    async def send(self, request: Request) -> Result[Any]:
        handler = self._handlers.get(type(request))
        if handler is None:
            raise HandlerNotRegisteredError(type(request))
        logger.debug("dispatch", request=type(request).__name__)
        return await handler.handle(request)


def build_mediator(repository: AlertRepository) -> Mediator:
    mediator = Mediator()
    for handler in alert_handlers(repository):
        mediator.register_handler(handler)
    mediator.verify(ALERT_REQUEST_TYPES)
    return mediator
