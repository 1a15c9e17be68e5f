from __future__ import annotations

import pytest

from intel_console.contracts import GetAlertSummaryQuery, GetAllAlertsQuery
from intel_console.errors import (
    DuplicateHandlerError,
    Error,
    ErrorType,
    HandlerNotRegisteredError,
    Result,
)
from intel_console.handlers import GetAlertSummaryHandler, GetAllAlertsHandler
from intel_console.mediator import ALERT_REQUEST_TYPES, Mediator


class _NarrowedQuery(GetAllAlertsQuery):
    pass


def test_build_mediator_registers_every_request_type(mediator):
    assert mediator.registered_types == frozenset(ALERT_REQUEST_TYPES)
    for request_type in ALERT_REQUEST_TYPES:
        assert mediator.handler_for(request_type).request_type is request_type


def test_duplicate_registration_raises(repository):
    mediator = Mediator()
    mediator.register_handler(GetAllAlertsHandler(repository))
    with pytest.raises(DuplicateHandlerError):
        mediator.register(GetAllAlertsQuery, GetAllAlertsHandler(repository))


def test_verify_reports_missing_handler(repository):
    mediator = Mediator()
    mediator.register_handler(GetAlertSummaryHandler(repository))
    with pytest.raises(HandlerNotRegisteredError) as excinfo:
        mediator.verify(ALERT_REQUEST_TYPES)
    assert excinfo.value.request_type in ALERT_REQUEST_TYPES


@pytest.mark.asyncio
async def test_send_without_handler_raises():
    with pytest.raises(HandlerNotRegisteredError):
        await Mediator().send(GetAlertSummaryQuery())


@pytest.mark.asyncio
async def test_send_matches_exact_request_type(mediator):
    with pytest.raises(HandlerNotRegisteredError):
        await mediator.send(_NarrowedQuery())


@pytest.mark.asyncio
async def test_send_routes_to_handler(mediator):
    result = await mediator.send(GetAllAlertsQuery())
    assert not result.is_error
    assert result.value == []


def test_result_accessors():
    ok = Result.ok(5)
    assert not ok.is_error and ok.value == 5
    with pytest.raises(ValueError):
        ok.first_error

    failed = Result.fail(Error.conflict("X.Conflict", "boom"), Error.validation("X.Bad", "bad"))
    assert failed.is_error
    assert failed.first_error.code == "X.Conflict"
    assert failed.first_error.type == ErrorType.conflict
    with pytest.raises(ValueError):
        failed.value

    with pytest.raises(ValueError):
        Result.fail()
