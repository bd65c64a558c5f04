"""HTTP dispatcher for inbound button events.

A :class:`ButtonDispatcher` owns a FastAPI application with one
``POST`` route per button accessory.  The route path comes from
:func:`~pyButtonPlatform.routes.route_for`; the handler resolves the
accessory through the dispatcher's route table at request time, so
re-binding a path only swaps the target record.

Request handling::

    received → validated → dispatched → responded

* The body is parsed as JSON (``application/json``) or as a URL-encoded
  form (``application/x-www-form-urlencoded``).  Anything else counts
  as an empty body.
* ``event`` must be one of :data:`~pyButtonPlatform.events.ACCEPTED_EVENTS`.
  Otherwise the response is ``422 {"errors": [...]}`` and nothing is
  triggered.
* On success ``200 Success.`` is sent first; classification and the
  trigger run as a background task after the response.
* Routes match with or without a trailing slash and without regard
  to case.  Unbound paths and wrong methods answer
  ``404 Button not found.``.
* Any unhandled fault answers ``500 Server error.`` and is escalated to
  the ``on_fatal`` callback.
"""

from __future__ import annotations

import logging
import traceback
from typing import Any, Callable, Dict, List, Optional

from fastapi import BackgroundTasks, FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic import BaseModel, ValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.types import ASGIApp, Receive, Scope, Send

from pyButtonPlatform.accessory import ButtonAccessory
from pyButtonPlatform.events import ButtonEventName, classify_event
from pyButtonPlatform.routes import ROUTE_PREFIX

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

SUCCESS_MESSAGE: str = "Success."
NOT_FOUND_MESSAGE: str = "Button not found."
SERVER_ERROR_MESSAGE: str = "Server error."

_FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"

#: Called with a description (traceback) of an unhandled fault.
FatalCallback = Callable[[str], None]


class ButtonEventRequest(BaseModel):
    """Body of a button event request."""

    event: ButtonEventName


def _validation_errors(exc: ValidationError) -> List[Dict[str, Any]]:
    """Flatten pydantic errors into ``{location, param, value, msg}``."""
    errors = []
    for err in exc.errors():
        missing = err.get("type") == "missing"
        errors.append({
            "location": "body",
            "param": ".".join(str(p) for p in err.get("loc", ())) or "body",
            "value": None if missing else err.get("input"),
            "msg": err.get("msg", "Invalid value"),
        })
    return jsonable_encoder(errors)


class _CaseInsensitiveButtonPaths:
    """ASGI middleware matching button routes without regard to case.

    Routes are always lowercase slugs, so a path that lowercases to
    something under :data:`ROUTE_PREFIX` is rewritten before routing.
    """

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] == "http":
            path = scope["path"]
            lowered = path.lower()
            if lowered != path and lowered.startswith(ROUTE_PREFIX):
                scope = dict(scope, path=lowered)
        await self.app(scope, receive, send)


# ---------------------------------------------------------------------------
# ButtonDispatcher
# ---------------------------------------------------------------------------


class ButtonDispatcher:
    """Route table and FastAPI app for button events.

    Parameters
    ----------
    on_fatal:
        Called with the traceback text of any unhandled fault raised
        while a request is processed.
    title:
        Title of the FastAPI application.
    """

    def __init__(
        self,
        on_fatal: Optional[FatalCallback] = None,
        *,
        title: str = "Buttons",
    ) -> None:
        self._on_fatal = on_fatal
        self._routes: Dict[str, ButtonAccessory] = {}
        self._app = FastAPI(
            title=title,
            docs_url=None,
            redoc_url=None,
            openapi_url=None,
            redirect_slashes=False,
        )
        self._app.add_middleware(_CaseInsensitiveButtonPaths)
        self._app.add_exception_handler(
            StarletteHTTPException, self._handle_http_exception
        )
        self._app.add_exception_handler(Exception, self._handle_server_error)

    @property
    def app(self) -> FastAPI:
        """The ASGI application."""
        return self._app

    @property
    def routes(self) -> Dict[str, ButtonAccessory]:
        """A copy of the route table (path → accessory)."""
        return dict(self._routes)

    def resolve(self, path: str) -> Optional[ButtonAccessory]:
        """Return the accessory bound to *path*, or ``None``."""
        return self._routes.get(path)

    # ---- binding -----------------------------------------------------

    def bind(self, accessory: ButtonAccessory) -> bool:
        """Bind the event route of *accessory*.

        Binding an already bound name again only refreshes the target
        record.  When a different name's route collides with a bound
        one, an alive accessory takes the path over from a stale
        (``alive == False``) record; otherwise the first binding stays
        and the new one is refused.

        Returns
        -------
        bool
            ``True`` if the route now points at *accessory*.
        """
        uri = accessory.route
        existing = self._routes.get(uri)
        if existing is None:
            self._routes[uri] = accessory
            self._add_routes(uri)
            logger.info("The Event URI for %s is: %s", accessory.name, uri)
            return True

        if existing.name == accessory.name:
            self._routes[uri] = accessory
            return True

        if existing.alive or not accessory.alive:
            logger.warning(
                "Route %s for %s collides with %s — not bound",
                uri,
                accessory.name,
                existing.name,
            )
            return False

        logger.info(
            "Route %s moves from stale %s to %s",
            uri,
            existing.name,
            accessory.name,
        )
        self._routes[uri] = accessory
        return True

    def _add_routes(self, uri: str) -> None:
        # With and without trailing slash; redirects are disabled.
        endpoint = self._make_endpoint(uri)
        for path in (uri, uri + "/"):
            self._app.add_api_route(
                path,
                endpoint,
                methods=["POST"],
                response_class=PlainTextResponse,
            )

    def _make_endpoint(self, uri: str):
        async def endpoint(request: Request, background_tasks: BackgroundTasks):
            return await self._handle_event(uri, request, background_tasks)

        endpoint.__name__ = "button_event_" + uri.strip("/").replace("-", "_")
        return endpoint

    # ---- request handling --------------------------------------------

    async def _handle_event(
        self,
        uri: str,
        request: Request,
        background_tasks: BackgroundTasks,
    ):
        accessory = self._routes[uri]
        payload = await self._read_payload(request)
        try:
            body = ButtonEventRequest.model_validate(payload)
        except ValidationError as exc:
            logger.debug("Rejected event on %s: %s", uri, exc)
            return JSONResponse(
                {"errors": _validation_errors(exc)}, status_code=422
            )

        logger.info(
            "Received POST request on %s to trigger a [%s] event for %s",
            uri,
            body.event,
            accessory.name,
        )
        background_tasks.add_task(self._dispatch, accessory, body.event)
        return PlainTextResponse(SUCCESS_MESSAGE, status_code=200)

    async def _read_payload(self, request: Request) -> Any:
        """Decode a JSON or form body; anything else becomes ``{}``."""
        content_type = request.headers.get("content-type", "")
        mime = content_type.split(";", 1)[0].strip().lower()
        try:
            if mime == "application/json" or mime.endswith("+json"):
                return await request.json()
            if mime == _FORM_CONTENT_TYPE:
                form = await request.form()
                return dict(form)
        except ValueError as exc:
            logger.debug("Ignoring undecodable %s body: %s", mime, exc)
        return {}

    @staticmethod
    async def _dispatch(accessory: ButtonAccessory, event: str) -> None:
        # Runs on the event loop so async press listeners can be scheduled.
        accessory.trigger_event(classify_event(event))

    # ---- fallback handlers -------------------------------------------

    async def _handle_http_exception(
        self, request: Request, exc: StarletteHTTPException
    ):
        if exc.status_code in (404, 405):
            logger.warning(
                "Received event for unconfigured Button path: %s",
                request.url.path,
            )
            return PlainTextResponse(NOT_FOUND_MESSAGE, status_code=404)
        return PlainTextResponse(
            str(exc.detail), status_code=exc.status_code
        )

    async def _handle_server_error(self, request: Request, exc: Exception):
        details = "".join(
            traceback.format_exception(type(exc), exc, exc.__traceback__)
        )
        if self._on_fatal is not None:
            self._on_fatal(details)
        else:
            logger.critical("Unhandled error on %s\n%s", request.url.path, details)
        return PlainTextResponse(SERVER_ERROR_MESSAGE, status_code=500)

    def __repr__(self) -> str:
        return f"ButtonDispatcher(routes={len(self._routes)})"
