import asyncio
import logging
import uuid
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Annotated, AsyncIterator, Optional

from fastapi import (
    Depends,
    FastAPI,
    HTTPException,
    Query,
    Request,
    Response,
    WebSocket,
    WebSocketDisconnect,
    status,
)
from fastapi.responses import FileResponse, RedirectResponse
from fastapi.staticfiles import StaticFiles

from swiftlogix import content
from swiftlogix.admin import AdminService
from swiftlogix.auth import AuthState, RouteDecision, TokenSessionProvider, friendly_auth_error
from swiftlogix.backend import AuthUser, Backend, get_backend
from swiftlogix.chat import QUICK_REPLIES, ChatService
from swiftlogix.config import settings
from swiftlogix.errors import BackendError, NotFoundError, ValidationError
from swiftlogix.logging_utils import setup_logging, RequestLoggingMiddleware, log_request_data
from swiftlogix.metrics import get_metrics, get_metrics_content_type, record_quote
from swiftlogix.orders import OrderService, dashboard_stats, filter_orders, validate_step
from swiftlogix.quote import SHIPPING_METHODS, calculate_quote, chargeable_weight
from swiftlogix.schemas import (
    ChatReplyResponse,
    ChatSendRequest,
    ChatTranscriptResponse,
    ContactRequest,
    DashboardResponse,
    ErrorResponse,
    EventCreateRequest,
    EventsResponse,
    HealthResponse,
    OrderConfirmation,
    OrderForm,
    QuoteRequest,
    QuoteResponse,
    SessionResponse,
    Shipment,
    ShipmentEvent,
    ShippingMethodResponse,
    SignInRequest,
    SignUpRequest,
    StatusResponse,
    StatusUpdateRequest,
    StepValidationRequest,
    StepValidationResponse,
    TrackingRequest,
    TrackingResponse,
    UserResponse,
)
from swiftlogix.storage import init_db
from swiftlogix.tracking import TrackingLookup, read_events
from swiftlogix.utils import normalize_tracking_number, resolve_session_id


# Setup structured JSON logging
setup_logging(settings.LOG_LEVEL)
logger = logging.getLogger(__name__)

STATIC_DIR = Path(__file__).resolve().parent / "static"
PAGES_DIR = STATIC_DIR / "pages"

BACKEND_ERROR_MESSAGE = "Something went wrong. Please try again."
SESSION_COOKIE_MAX_AGE = 60 * 60 * 24 * 365


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for startup and shutdown events.
    - Startup: create local backend tables when the local backend is active
    """
    if settings.BACKEND.lower() == "local":
        init_db()
    yield


app = FastAPI(
    title="SwiftLogix",
    description="Logistics site: quotes, ship-now orders, tracking, customer dashboard, admin panel and chat",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(RequestLoggingMiddleware)
app.mount("/static", StaticFiles(directory=str(STATIC_DIR)), name="static")


# =============================================================================
# Dependencies
# =============================================================================

def get_access_token(request: Request) -> Optional[str]:
    """Bearer token from the Authorization header, else the auth cookie."""
    header = request.headers.get("Authorization", "")
    if header.lower().startswith("bearer "):
        return header[7:].strip() or None
    return request.cookies.get(settings.AUTH_COOKIE)


async def get_auth_state(
    request: Request,
    backend: Backend = Depends(get_backend),
) -> AsyncIterator[AuthState]:
    """Resolve session and admin role before the route runs."""
    state = AuthState(TokenSessionProvider(backend, get_access_token(request)), backend)
    try:
        await state.start()
    except BackendError as e:
        state.stop()
        raise backend_failure(e)
    try:
        yield state
    finally:
        state.stop()


async def require_user(state: AuthState = Depends(get_auth_state)) -> AuthUser:
    if state.decide() is not RouteDecision.ALLOW:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Sign in required")
    return state.user


async def require_admin(state: AuthState = Depends(get_auth_state)) -> AuthUser:
    decision = state.decide(require_admin=True)
    if decision is RouteDecision.SIGN_IN:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Sign in required")
    if decision is not RouteDecision.ALLOW:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Administrator access required")
    return state.user


def get_client_session_id(request: Request) -> str:
    return resolve_session_id(request.cookies.get(settings.SESSION_COOKIE))


def remember_client_session(response: Response, session_id: str) -> None:
    response.set_cookie(
        settings.SESSION_COOKIE,
        session_id,
        max_age=SESSION_COOKIE_MAX_AGE,
        httponly=True,
        samesite="lax",
    )


def backend_failure(e: BackendError) -> HTTPException:
    logger.error(f"Backend call failed: {e}")
    return HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=BACKEND_ERROR_MESSAGE)


def invalid(e: ValidationError) -> HTTPException:
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=e.message)


def not_found(e: NotFoundError) -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=e.message)


ERROR_RESPONSES = {
    400: {"model": ErrorResponse, "description": "Validation error"},
    502: {"model": ErrorResponse, "description": "Backend unavailable"},
}


# =============================================================================
# Pages
# =============================================================================

PUBLIC_PAGES = {
    "/": "home.html",
    "/services": "services.html",
    "/air-freight": "services.html",
    "/ocean-freight": "services.html",
    "/about": "about.html",
    "/contact": "contact.html",
    "/tracking": "tracking.html",
    "/ship": "ship.html",
}


def page(name: str) -> FileResponse:
    return FileResponse(str(PAGES_DIR / name))


def _public_page(name: str):
    async def serve() -> FileResponse:
        return page(name)
    return serve


for _path, _name in PUBLIC_PAGES.items():
    app.add_api_route(_path, _public_page(_name), methods=["GET"], include_in_schema=False)


@app.get("/auth", include_in_schema=False)
async def auth_page(state: AuthState = Depends(get_auth_state)):
    if state.user is not None:
        return RedirectResponse("/dashboard")
    return page("auth.html")


@app.get("/dashboard", include_in_schema=False)
async def dashboard_page(state: AuthState = Depends(get_auth_state)):
    if state.decide() is RouteDecision.SIGN_IN:
        return RedirectResponse("/auth")
    return page("dashboard.html")


@app.get("/admin", include_in_schema=False)
async def admin_page(state: AuthState = Depends(get_auth_state)):
    decision = state.decide(require_admin=True)
    if decision is RouteDecision.SIGN_IN:
        return RedirectResponse("/auth")
    if decision is RouteDecision.HOME:
        return RedirectResponse("/")
    return page("admin.html")


# =============================================================================
# Health Check Routes
# =============================================================================

@app.get("/health/live", response_model=HealthResponse)
async def health_live() -> HealthResponse:
    """Liveness probe - always returns 200 once the app is running."""
    return HealthResponse(status="ok")


@app.get("/health/ready", response_model=HealthResponse)
async def health_ready(response: Response, backend: Backend = Depends(get_backend)) -> HealthResponse:
    """
    Readiness probe - returns 200 only if the backend is configured and reachable.
    Otherwise returns 503 (Service Unavailable).
    """
    ready, reason = backend.check_health()
    if not ready:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return HealthResponse(status="not_ready", reason=reason)
    return HealthResponse(status="ready")


# =============================================================================
# Content and Quote Routes
# =============================================================================

@app.get("/api/content")
async def site_content() -> dict:
    """Static copy for the public pages."""
    return {
        "company": content.COMPANY,
        "services": content.SERVICES,
        "features": content.FEATURES,
        "stats": content.STATS,
        "values": content.VALUES,
        "contact": content.CONTACT_CHANNELS,
        "countries": content.COUNTRIES,
    }


@app.post("/api/contact", response_model=StatusResponse, responses=ERROR_RESPONSES)
async def contact(payload: ContactRequest) -> StatusResponse:
    try:
        message = content.submit_contact(payload)
    except ValidationError as e:
        raise invalid(e)
    return StatusResponse(status="ok", message=message)


@app.get("/api/shipping-methods", response_model=list[ShippingMethodResponse])
async def shipping_methods() -> list[ShippingMethodResponse]:
    return [
        ShippingMethodResponse(
            id=method.id,
            name=method.name,
            days=method.days,
            multiplier=method.multiplier,
            description=method.description,
        )
        for method in SHIPPING_METHODS
    ]


@app.post("/api/quote", response_model=QuoteResponse)
async def quote(payload: QuoteRequest) -> QuoteResponse:
    """
    Price a package: $5/kg on the chargeable weight times the method
    multiplier, plus 2% of declared value when insured, minimum $25.
    """
    price = calculate_quote(
        weight_kg=payload.weight_kg,
        method=payload.shipping_method,
        length_cm=payload.length_cm,
        width_cm=payload.width_cm,
        height_cm=payload.height_cm,
        insurance=payload.insurance,
        declared_value=payload.declared_value,
    )
    record_quote(payload.shipping_method)
    return QuoteResponse(
        quoted_price=price,
        chargeable_weight_kg=round(
            chargeable_weight(payload.weight_kg, payload.length_cm, payload.width_cm, payload.height_cm), 3
        ),
        shipping_method=payload.shipping_method,
    )


# =============================================================================
# Order Routes
# =============================================================================

@app.post("/api/orders/validate", response_model=StepValidationResponse)
async def validate_order_step(payload: StepValidationRequest) -> StepValidationResponse:
    missing = validate_step(payload.form, payload.step, payload.quoted_price)
    return StepValidationResponse(valid=not missing, missing=missing)


@app.post(
    "/api/orders",
    response_model=OrderConfirmation,
    status_code=status.HTTP_201_CREATED,
    responses=ERROR_RESPONSES,
)
async def place_order(
    form: OrderForm,
    request: Request,
    response: Response,
    backend: Backend = Depends(get_backend),
    state: AuthState = Depends(get_auth_state),
) -> OrderConfirmation:
    """
    Place an order from the ship-now form and create its shipment.
    Signed-in customers get the order on their dashboard.
    """
    session_id = get_client_session_id(request)
    user_id = state.user.id if state.user else None
    try:
        confirmation = await OrderService(backend).submit(form, session_id=session_id, user_id=user_id)
    except ValidationError as e:
        raise invalid(e)
    except BackendError as e:
        raise backend_failure(e)

    remember_client_session(response, session_id)
    log_request_data(request, order_number=confirmation.order_number,
                     tracking_number=confirmation.tracking_number)
    return confirmation


@app.get("/api/orders", response_model=DashboardResponse)
async def my_orders(
    q: Annotated[Optional[str], Query(description="Search order number or city")] = None,
    user: AuthUser = Depends(require_user),
    backend: Backend = Depends(get_backend),
) -> DashboardResponse:
    """Dashboard data for the signed-in customer: orders newest first plus counts."""
    try:
        orders = await OrderService(backend).list_user_orders(user.id)
    except BackendError as e:
        raise backend_failure(e)
    return DashboardResponse(orders=filter_orders(orders, q), stats=dashboard_stats(orders))


# =============================================================================
# Tracking Routes
# =============================================================================

@app.post(
    "/api/tracking",
    response_model=TrackingResponse,
    responses={
        400: {"model": ErrorResponse, "description": "Empty tracking number"},
        404: {"model": ErrorResponse, "description": "No such shipment"},
        502: {"model": ErrorResponse, "description": "Backend unavailable"},
    },
)
async def track(payload: TrackingRequest, request: Request, backend: Backend = Depends(get_backend)) -> TrackingResponse:
    """Resolve a tracking number to its shipment and event history (oldest first)."""
    async with TrackingLookup(backend) as lookup:
        result = await lookup.track(payload.tracking_number)

    log_request_data(
        request,
        tracking_number=normalize_tracking_number(payload.tracking_number) or None,
        result=lookup.last_outcome,
    )
    if result is not None:
        return result
    if lookup.last_outcome == "error":
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=lookup.error)
    if not normalize_tracking_number(payload.tracking_number):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=lookup.error)
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=lookup.error)


@app.get("/api/tracking/{session_token}/events", response_model=EventsResponse)
async def tracking_events(session_token: str, backend: Backend = Depends(get_backend)) -> EventsResponse:
    """Re-read the event history with the token issued by a lookup."""
    try:
        events = await read_events(backend, session_token)
    except NotFoundError as e:
        raise not_found(e)
    except BackendError as e:
        raise backend_failure(e)
    return EventsResponse(events=events)


@app.websocket("/ws/tracking")
async def tracking_updates(websocket: WebSocket, number: str = "", backend: Backend = Depends(get_backend)):
    """
    Live tracking: sends a snapshot, then the full state after each change.
    The realtime subscription lives exactly as long as the socket.
    """
    await websocket.accept()
    loop = asyncio.get_running_loop()
    updates: asyncio.Queue = asyncio.Queue()

    def push(latest: TrackingResponse) -> None:
        # Changes may be published from another thread's event loop
        loop.call_soon_threadsafe(updates.put_nowait, latest.model_dump())

    async with TrackingLookup(backend) as lookup:
        result = await lookup.track(number)
        if result is None:
            await websocket.send_json({"type": "error", "detail": lookup.error})
            await websocket.close()
            return

        await websocket.send_json({"type": "snapshot", **result.model_dump()})
        try:
            await lookup.subscribe(on_change=push)
        except BackendError as e:
            logger.error(f"Live tracking unavailable: {e}")
            await websocket.send_json({"type": "error", "detail": BACKEND_ERROR_MESSAGE})
            await websocket.close()
            return

        receiver = asyncio.ensure_future(websocket.receive_text())
        try:
            while True:
                getter = asyncio.ensure_future(updates.get())
                done, _ = await asyncio.wait({getter, receiver}, return_when=asyncio.FIRST_COMPLETED)
                if receiver in done:
                    getter.cancel()
                    if receiver.exception() is not None:
                        break
                    # Client messages are ignored; keep listening for disconnect
                    receiver = asyncio.ensure_future(websocket.receive_text())
                    continue
                await websocket.send_json({"type": "update", **getter.result()})
        except WebSocketDisconnect:
            pass
        finally:
            receiver.cancel()
    logger.info(f"Live tracking closed for {result.shipment.tracking_number}")


# =============================================================================
# Chat Routes
# =============================================================================

@app.get("/api/chat/messages", response_model=ChatTranscriptResponse)
async def chat_transcript(
    request: Request,
    response: Response,
    backend: Backend = Depends(get_backend),
) -> ChatTranscriptResponse:
    session_id = get_client_session_id(request)
    messages = await ChatService(backend).load_transcript(session_id)
    remember_client_session(response, session_id)
    return ChatTranscriptResponse(
        session_id=session_id,
        messages=messages,
        quick_replies=list(QUICK_REPLIES),
    )


@app.post("/api/chat/messages", response_model=ChatReplyResponse, responses=ERROR_RESPONSES)
async def chat_send(
    payload: ChatSendRequest,
    request: Request,
    response: Response,
    backend: Backend = Depends(get_backend),
) -> ChatReplyResponse:
    session_id = get_client_session_id(request)
    try:
        user_message, assistant_message = await ChatService(backend).send(session_id, payload.content)
    except ValidationError as e:
        raise invalid(e)
    remember_client_session(response, session_id)
    return ChatReplyResponse(
        session_id=session_id,
        user_message=user_message,
        assistant_message=assistant_message,
    )


# =============================================================================
# Auth Routes
# =============================================================================

def session_response(state: AuthState) -> SessionResponse:
    if state.user is None:
        return SessionResponse(user=None, is_admin=False)
    return SessionResponse(
        user=UserResponse(id=state.user.id, email=state.user.email),
        is_admin=state.is_admin,
    )


def set_auth_cookie(response: Response, access_token: str) -> None:
    response.set_cookie(settings.AUTH_COOKIE, access_token, httponly=True, samesite="lax")


@app.get("/api/auth/session", response_model=SessionResponse)
async def current_session(state: AuthState = Depends(get_auth_state)) -> SessionResponse:
    return session_response(state)


@app.post("/api/auth/sign-in", response_model=SessionResponse, responses=ERROR_RESPONSES)
async def sign_in(payload: SignInRequest, response: Response, backend: Backend = Depends(get_backend)) -> SessionResponse:
    provider = TokenSessionProvider(backend)
    async with AuthState(provider, backend) as state:
        try:
            session = await provider.sign_in(payload.email.strip(), payload.password)
        except ValidationError as e:
            raise invalid(e)
        except BackendError as e:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=friendly_auth_error(e.message))
        set_auth_cookie(response, session.access_token)
        return session_response(state)


@app.post("/api/auth/sign-up", response_model=SessionResponse, responses=ERROR_RESPONSES)
async def sign_up(payload: SignUpRequest, response: Response, backend: Backend = Depends(get_backend)) -> SessionResponse:
    provider = TokenSessionProvider(backend)
    async with AuthState(provider, backend) as state:
        try:
            session = await provider.sign_up(payload.email.strip(), payload.password, payload.confirm_password)
        except ValidationError as e:
            raise invalid(e)
        except BackendError as e:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=friendly_auth_error(e.message))
        set_auth_cookie(response, session.access_token)
        return session_response(state)


@app.post("/api/auth/sign-out", response_model=SessionResponse)
async def sign_out(request: Request, response: Response, backend: Backend = Depends(get_backend)) -> SessionResponse:
    provider = TokenSessionProvider(backend, get_access_token(request))
    try:
        async with AuthState(provider, backend) as state:
            await provider.sign_out()
            response.delete_cookie(settings.AUTH_COOKIE)
            return session_response(state)
    except BackendError as e:
        raise backend_failure(e)


# =============================================================================
# Admin Routes
# =============================================================================

@app.get("/api/admin/shipments", response_model=list[Shipment])
async def admin_shipments(
    q: Annotated[Optional[str], Query(description="Search tracking number, names or destination city")] = None,
    admin: AuthUser = Depends(require_admin),
    backend: Backend = Depends(get_backend),
) -> list[Shipment]:
    try:
        return await AdminService(backend).list_shipments(q)
    except BackendError as e:
        raise backend_failure(e)


@app.get("/api/admin/shipments/{shipment_id}/events", response_model=list[ShipmentEvent])
async def admin_shipment_events(
    shipment_id: str,
    admin: AuthUser = Depends(require_admin),
    backend: Backend = Depends(get_backend),
) -> list[ShipmentEvent]:
    try:
        return await AdminService(backend).list_events(shipment_id)
    except BackendError as e:
        raise backend_failure(e)


@app.patch("/api/admin/shipments/{shipment_id}/status", response_model=Shipment, responses=ERROR_RESPONSES)
async def admin_set_status(
    shipment_id: str,
    payload: StatusUpdateRequest,
    admin: AuthUser = Depends(require_admin),
    backend: Backend = Depends(get_backend),
) -> Shipment:
    try:
        return await AdminService(backend).set_status(shipment_id, payload.status)
    except ValidationError as e:
        raise invalid(e)
    except NotFoundError as e:
        raise not_found(e)
    except BackendError as e:
        raise backend_failure(e)


@app.post(
    "/api/admin/shipments/{shipment_id}/events",
    response_model=ShipmentEvent,
    status_code=status.HTTP_201_CREATED,
    responses=ERROR_RESPONSES,
)
async def admin_add_event(
    shipment_id: str,
    payload: EventCreateRequest,
    admin: AuthUser = Depends(require_admin),
    backend: Backend = Depends(get_backend),
) -> ShipmentEvent:
    """Append a tracking event stamped now; the shipment moves to the event's status."""
    try:
        return await AdminService(backend).append_event(
            shipment_id, payload.status, payload.location, payload.description
        )
    except ValidationError as e:
        raise invalid(e)
    except NotFoundError as e:
        raise not_found(e)
    except BackendError as e:
        raise backend_failure(e)


@app.post(
    "/api/admin/orders",
    response_model=OrderConfirmation,
    status_code=status.HTTP_201_CREATED,
    responses=ERROR_RESPONSES,
)
async def admin_place_order(
    form: OrderForm,
    request: Request,
    admin: AuthUser = Depends(require_admin),
    backend: Backend = Depends(get_backend),
) -> OrderConfirmation:
    """Create an order on a customer's behalf."""
    try:
        confirmation = await OrderService(backend).submit(
            form, session_id=str(uuid.uuid4()), user_id=admin.id
        )
    except ValidationError as e:
        raise invalid(e)
    except BackendError as e:
        raise backend_failure(e)
    log_request_data(request, order_number=confirmation.order_number)
    return confirmation


# =============================================================================
# Metrics Route
# =============================================================================

@app.get("/metrics")
async def metrics() -> Response:
    """Expose Prometheus-style metrics."""
    return Response(
        content=get_metrics(),
        media_type=get_metrics_content_type()
    )
