"""HTTP surface for chatcortex."""

import json
import logging
from collections.abc import Awaitable, Callable

from aiohttp import web

from chatcortex.core.error_handling import COMMON_HANDLER_EXCEPTIONS, log_exception
from chatcortex.core.exceptions import ChatDispatchError, UnsupportedModelError
from chatcortex.logic.dispatch import ChatDispatcher, SendMessageRequest, error_message
from chatcortex.logic.permissions import DEFAULT_PLAN, available_models, is_model_allowed

logger = logging.getLogger(__name__)

RequestHandler = Callable[[web.Request], Awaitable[web.StreamResponse]]
SERVER_HANDLER_EXCEPTIONS = COMMON_HANDLER_EXCEPTIONS

DISPATCHER_KEY = web.AppKey("dispatcher", ChatDispatcher)
PLANS_KEY = web.AppKey("plans", dict)


def _error_response(status: int, error: BaseException) -> web.Response:
    return web.json_response(
        {"error": type(error).__name__, "message": error_message(error).to_dict()},
        status=status,
    )


@web.middleware
async def _error_middleware(
    request: web.Request,
    handler: RequestHandler,
) -> web.StreamResponse:
    try:
        return await handler(request)
    except web.HTTPException:
        raise
    except UnsupportedModelError as exc:
        return _error_response(400, exc)
    except ChatDispatchError as exc:
        return _error_response(502, exc)
    except SERVER_HANDLER_EXCEPTIONS as exc:
        log_exception(
            logger=logger,
            message="Unhandled server error",
            error=exc,
            context={
                "method": request.method,
                "path": request.path,
            },
        )
        return _error_response(500, exc)


async def health_check(_request: web.Request) -> web.Response:
    """Return a basic liveness response."""
    return web.Response(text="I'm alive")


async def list_models(request: web.Request) -> web.Response:
    """List the models available to the requested plan."""
    dispatcher = request.app[DISPATCHER_KEY]
    plan = request.query.get("plan", DEFAULT_PLAN)
    models = available_models(dispatcher.registry, plan, request.app[PLANS_KEY])
    return web.json_response({"models": [model.to_dict() for model in models]})


async def send_chat_message(request: web.Request) -> web.Response:
    """Dispatch one user message and return the assistant reply."""
    try:
        body = await request.json()
    except json.JSONDecodeError as exc:
        return web.json_response(
            {"error": "InvalidJSON", "message": str(exc)},
            status=400,
        )
    if not isinstance(body, dict):
        return web.json_response(
            {"error": "InvalidBody", "message": "Request body must be a JSON object"},
            status=400,
        )

    try:
        chat_request = SendMessageRequest.from_dict(body, client_ip=request.remote)
    except ValueError as exc:
        return web.json_response({"error": "InvalidBody", "message": str(exc)}, status=400)

    plan = str(body.get("plan") or DEFAULT_PLAN)
    if not is_model_allowed(chat_request.model, plan, request.app[PLANS_KEY]):
        return web.json_response(
            {
                "error": "ModelNotAllowed",
                "message": f"Model '{chat_request.model}' is not available on plan '{plan}'",
            },
            status=403,
        )

    result = await request.app[DISPATCHER_KEY].send_message(chat_request)
    return web.json_response(result.to_dict())


def create_app(dispatcher: ChatDispatcher, *, plans: dict | None = None) -> web.Application:
    """Build the aiohttp application around ``dispatcher``."""
    app = web.Application(middlewares=[_error_middleware])
    app[DISPATCHER_KEY] = dispatcher
    app[PLANS_KEY] = plans or {}
    app.add_routes(
        [
            web.get("/", health_check),
            web.get("/api/models", list_models),
            web.post("/api/chat", send_chat_message),
        ],
    )
    return app
