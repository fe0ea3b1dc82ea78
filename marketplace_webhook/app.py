import logging
import re
import time
from contextlib import asynccontextmanager
from typing import Any, Dict, List

from fastapi import Depends, FastAPI, Query, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from .config import Settings
from .errors import (
    APIError,
    EventError,
    MalformedPayloadError,
    StorageError,
    UnhandledEventTypeError,
    invalid_json,
    method_not_allowed,
)
from .handlers import EventDispatcher, build_event_handlers
from .models import OrderEvent

logger = logging.getLogger(__name__)

# Routes accept every verb and check their own, so that e.g. POST /ready is a
# 405 rather than a webhook for merchant "ready".
ALL_METHODS = ['GET', 'POST', 'PUT', 'PATCH', 'DELETE', 'HEAD', 'OPTIONS']

MERCHANT_PATH_PATTERN = re.compile(r'/([A-Za-z0-9_]+)')


def require_method(request: Request, expected: str) -> None:
    if request.method != expected:
        raise method_not_allowed(expected)


def extract_merchant_id(path: str) -> str:
    """
    Take the merchant id from a decoded request path such as "/BIGW".

    Raises:
        APIError: 400 if the whole path is not a single identifier segment
    """
    match = MERCHANT_PATH_PATTERN.fullmatch(path)
    if match is None:
        raise APIError(400, f"unable to extract merchant id: invalid URL path: {path!r}", "Invalid merchant ID format.")
    return match.group(1)


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_database(request: Request):
    return request.app.state.database


def get_dispatcher(request: Request) -> EventDispatcher:
    return request.app.state.dispatcher


def to_order_events(items: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    try:
        return [OrderEvent.from_item(item).model_dump(by_alias=True) for item in items]
    except ValidationError as e:
        raise APIError(500, e, "Failed to parse order event")


def create_app(settings: Settings, database) -> FastAPI:
    """
    Build the webhook application.

    Args:
        settings: Loaded settings (table names are read from here)
        database: Storage collaborator, already connected; shared by all requests

    Returns:
        FastAPI application with the event registry wired in
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        logger.info("Closing database connection")
        app.state.database.close()

    app = FastAPI(
        title="Marketplace Webhook Receiver",
        lifespan=lifespan,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )
    app.state.settings = settings
    app.state.database = database
    app.state.dispatcher = EventDispatcher(
        build_event_handlers(database, settings.order_table, settings.product_table)
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        start_time = time.perf_counter()
        logger.info(f"Received request: Method={request.method}, URL={request.url}")
        response = await call_next(request)
        processing_ms = (time.perf_counter() - start_time) * 1000
        logger.info(
            f"Request processed: Method={request.method}, URL={request.url}, "
            f"ResponseStatus={response.status_code}, ProcessingTime={processing_ms:.1f}ms"
        )
        return response

    @app.exception_handler(APIError)
    async def api_error_handler(request: Request, exc: APIError):
        logger.error(f"HTTP API Error: {exc}, Method: {request.method}, Path: {request.url.path}")
        return JSONResponse(exc.to_dict(), status_code=exc.status_code)

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        return await api_error_handler(request, APIError(exc.status_code, exc.detail, str(exc.detail)))

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        return await api_error_handler(request, APIError(400, exc.errors(), "Invalid request parameters"))

    @app.exception_handler(Exception)
    async def unexpected_error_handler(request: Request, exc: Exception):
        logger.error(f"Unexpected error: Method: {request.method}, Path: {request.url.path}", exc_info=exc)
        error = APIError(500, "Internal Server Error", "An unexpected error has occurred.")
        return JSONResponse(error.to_dict(), status_code=500)

    @app.api_route('/ready', methods=ALL_METHODS)
    def ready(request: Request):
        require_method(request, 'GET')
        return {"message": "Server is Ready"}

    @app.api_route('/live', methods=ALL_METHODS)
    def live(request: Request):
        require_method(request, 'GET')
        return {"message": "Server is Live"}

    @app.api_route('/health', methods=ALL_METHODS)
    def health(request: Request):
        require_method(request, 'GET')
        return {"message": "Server is Healthy"}

    @app.api_route('/dbhealth', methods=ALL_METHODS)
    def db_health(request: Request, database=Depends(get_database), settings: Settings = Depends(get_settings)):
        require_method(request, 'GET')
        try:
            database.describe_table(settings.order_table)
        except StorageError as e:
            raise APIError(500, e, "Database is unhealthy")
        return {"message": "Database is healthy"}

    @app.api_route('/order', methods=ALL_METHODS)
    def get_order_events_by_pk(
        request: Request,
        merchant_id: str = Query('', alias='merchantId'),
        external_order_id: str = Query('', alias='externalOrderId'),
        database=Depends(get_database),
        settings: Settings = Depends(get_settings),
    ):
        require_method(request, 'GET')
        if not merchant_id or not external_order_id:
            raise APIError(
                400,
                "missing merchantId or externalOrderId parameter",
                "Missing merchantId or externalOrderId parameter",
            )

        pk = f"#PK#{merchant_id}#{external_order_id}"
        try:
            items = database.fetch_by_primary_key(settings.order_table, pk)
        except StorageError as e:
            raise APIError(500, e, "Failed to fetch order events")

        if not items:
            raise APIError(404, f"order event not found for PK: {pk}", "Order events not found")
        return to_order_events(items)

    @app.api_route('/externalOrderId', methods=ALL_METHODS)
    def get_order_events_by_external_id(
        request: Request,
        external_order_id: str = Query('', alias='externalOrderId'),
        database=Depends(get_database),
        settings: Settings = Depends(get_settings),
    ):
        require_method(request, 'GET')
        if not external_order_id:
            raise APIError(400, "missing externalOrderId parameter", "Missing externalOrderId parameter")

        try:
            items = database.query_order_events_by_external_order_id(settings.order_table, external_order_id)
        except StorageError as e:
            raise APIError(500, e, "Failed to fetch order events by external order id")

        if not items:
            raise APIError(
                404,
                f"order event not found for external order id: {external_order_id}",
                "Order events not found",
            )
        return to_order_events(items)

    # Registered last: any other path is treated as /{merchantId}
    @app.api_route('/{merchant_path:path}', methods=ALL_METHODS)
    async def webhook_events(
        request: Request,
        dispatcher: EventDispatcher = Depends(get_dispatcher),
    ):
        require_method(request, 'POST')
        # the path convertor stops at a newline, so check the full decoded path
        merchant_id = extract_merchant_id(request.scope['path'])

        body = await request.body()
        logger.debug(f"Received body: {body[:500]!r}")

        try:
            event_type = dispatcher.event_type_of(body)
        except MalformedPayloadError as e:
            raise invalid_json(e)

        try:
            await run_in_threadpool(dispatcher.dispatch_event, event_type, merchant_id, body)
        except UnhandledEventTypeError as e:
            raise APIError(400, e, f"Unhandled event type: {e.event_type}")
        except StorageError as e:
            raise APIError(500, e, "Failed to store event")
        except EventError as e:
            raise APIError(400, e, "Failed to handle event")

        return {"message": "Success"}

    return app
