import logging
import secrets
import uuid
from datetime import timedelta
from typing import Any, Optional

from sqlalchemy import create_engine, inspect
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import sessionmaker, declarative_base

from swiftlogix.backend import (
    AuthSession,
    AuthUser,
    Backend,
    CHAT_TABLE,
    EVENTS_TABLE,
    ORDERS_TABLE,
    RPC_CREATE_SHIPMENT_FROM_ORDER,
    RPC_GET_SHIPMENT_EVENTS,
    RPC_HAS_ROLE,
    RPC_VERIFY_TRACKING_NUMBER,
    SHIPMENTS_TABLE,
)
from swiftlogix.config import settings
from swiftlogix.errors import BackendError
from swiftlogix.quote import get_shipping_method
from swiftlogix.realtime import ChangeCallback, RealtimeHub, Subscription
from swiftlogix.utils import (
    generate_tracking_number,
    is_tracking_number,
    normalize_tracking_number,
    utc_now,
    utc_now_iso,
)

logger = logging.getLogger(__name__)

# check_same_thread=False is required for SQLite to work with FastAPI's threadpool
_connect_args = {"check_same_thread": False} if settings.DATABASE_URL.startswith("sqlite") else {}

engine = create_engine(
    settings.DATABASE_URL,
    connect_args=_connect_args,
    echo=False,
)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Base class for SQLAlchemy models
Base = declarative_base()


TRACKING_NOT_FOUND = "No shipment found with this tracking number. Please check and try again."
TRACKING_SESSION_INVALID = "Tracking session is invalid or has expired. Please search again."

# Used when an order names a method the quote table does not know
DEFAULT_TRANSIT_DAYS = 7


def init_db() -> None:
    """
    Initialize the database by creating all tables.
    Called during application startup when the local backend is active.
    """
    logger.debug(f"Initializing database with URL: {settings.DATABASE_URL}")
    try:
        # Import models to register them with Base.metadata
        import swiftlogix.models  # noqa: F401

        Base.metadata.create_all(bind=engine)
        logger.info("Database initialized successfully")
    except Exception as e:
        logger.error(f"Failed to initialize database: {e}")
        raise


def check_db_health() -> bool:
    """
    Check if the database is reachable and schema is applied.

    Returns:
        True if DB is healthy and the shipments table exists, False otherwise.
    """
    logger.debug("Checking database health...")
    try:
        with engine.connect() as connection:
            if not inspect(connection).has_table(SHIPMENTS_TABLE):
                logger.error("Database schema not applied: 'shipments' table not found")
                return False
        logger.debug("Database health check passed")
        return True
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        return False


def _row_to_dict(row) -> dict:
    return {column.name: getattr(row, column.name) for column in row.__table__.columns}


def _table_models() -> dict:
    from swiftlogix.models import ChatMessage, Shipment, ShipmentEvent, ShippingOrder, UserRole

    return {
        ORDERS_TABLE: ShippingOrder,
        SHIPMENTS_TABLE: Shipment,
        EVENTS_TABLE: ShipmentEvent,
        CHAT_TABLE: ChatMessage,
        "user_roles": UserRole,
    }


# =============================================================================
# Local Backend
# =============================================================================

class LocalBackend(Backend):
    """
    SQLAlchemy implementation of the hosted backend for development and tests.

    Tables and procedures mirror the hosted schema; realtime changes are
    fanned out in-process through a RealtimeHub. Password authentication is
    not provided here: sessions are minted with issue_session().
    """

    def __init__(
        self,
        session_factory=SessionLocal,
        hub: Optional[RealtimeHub] = None,
        tracking_ttl_minutes: Optional[int] = None,
    ):
        self._session_factory = session_factory
        self.hub = hub or RealtimeHub()
        self._tracking_ttl = timedelta(
            minutes=tracking_ttl_minutes or settings.TRACKING_SESSION_TTL_MINUTES
        )
        self._procedures = {
            RPC_HAS_ROLE: self._has_role,
            RPC_VERIFY_TRACKING_NUMBER: self._verify_tracking_number,
            RPC_GET_SHIPMENT_EVENTS: self._get_shipment_events,
            RPC_CREATE_SHIPMENT_FROM_ORDER: self._create_shipment_from_order,
        }

    # -- helpers --------------------------------------------------------------

    @staticmethod
    def _model(table: str):
        model = _table_models().get(table)
        if model is None:
            raise BackendError(f"Unknown table: {table}")
        return model

    @staticmethod
    def _column(model, name: str):
        column = model.__table__.columns.get(name)
        if column is None:
            raise BackendError(f"Unknown column {model.__tablename__}.{name}")
        return column

    @staticmethod
    def _stamp(model, row: dict) -> dict:
        """Fill in the values the backend owns: id and timestamps."""
        columns = model.__table__.columns
        values = dict(row)
        now = utc_now_iso()
        if "id" in columns and not values.get("id"):
            values["id"] = str(uuid.uuid4())
        for name in ("created_at", "updated_at", "occurred_at"):
            if name in columns and not values.get(name):
                values[name] = now

        unknown = set(values) - set(columns.keys())
        if unknown:
            raise BackendError(f"Unknown columns for {model.__tablename__}: {sorted(unknown)}")
        return values

    # -- tables ---------------------------------------------------------------

    async def select(
        self,
        table: str,
        eq: Optional[dict] = None,
        order: Optional[str] = None,
        ascending: bool = True,
    ) -> list[dict]:
        model = self._model(table)
        logger.debug(f"select {table}: eq={eq}, order={order}, ascending={ascending}")
        try:
            with self._session_factory() as db:
                query = db.query(model)
                for name, value in (eq or {}).items():
                    query = query.filter(self._column(model, name) == value)
                if order:
                    column = self._column(model, order)
                    query = query.order_by(column.asc() if ascending else column.desc())
                return [_row_to_dict(row) for row in query.all()]
        except SQLAlchemyError as e:
            logger.error(f"select {table} failed: {e}")
            raise BackendError(f"Failed to read {table}") from e

    async def insert(self, table: str, row: dict) -> dict:
        model = self._model(table)
        values = self._stamp(model, row)
        try:
            with self._session_factory() as db:
                record = model(**values)
                db.add(record)
                db.commit()
                stored = _row_to_dict(record)
        except IntegrityError as e:
            logger.warning(f"insert {table} rejected: {e.orig}")
            raise BackendError(f"Duplicate or invalid row for {table}") from e
        except SQLAlchemyError as e:
            logger.error(f"insert {table} failed: {e}")
            raise BackendError(f"Failed to write {table}") from e

        logger.info(f"Inserted into {table}: id={stored.get('id')}")
        self.hub.publish(table, "INSERT", stored)
        return stored

    async def update(self, table: str, values: dict, eq: dict) -> list[dict]:
        if not eq:
            raise BackendError("update requires at least one filter")
        model = self._model(table)
        try:
            with self._session_factory() as db:
                query = db.query(model)
                for name, value in eq.items():
                    query = query.filter(self._column(model, name) == value)
                rows = query.all()
                for row in rows:
                    for name, value in values.items():
                        self._column(model, name)
                        setattr(row, name, value)
                    if "updated_at" in model.__table__.columns:
                        row.updated_at = utc_now_iso()
                db.commit()
                updated = [_row_to_dict(row) for row in rows]
        except SQLAlchemyError as e:
            logger.error(f"update {table} failed: {e}")
            raise BackendError(f"Failed to update {table}") from e

        logger.info(f"Updated {len(updated)} row(s) in {table}")
        for record in updated:
            self.hub.publish(table, "UPDATE", record)
        return updated

    # -- remote procedures ----------------------------------------------------

    async def rpc(self, name: str, params: dict) -> Any:
        procedure = self._procedures.get(name)
        if procedure is None:
            raise BackendError(f"Unknown procedure: {name}")
        logger.debug(f"rpc {name}")
        try:
            return procedure(params)
        except SQLAlchemyError as e:
            logger.error(f"rpc {name} failed: {e}")
            raise BackendError(f"Procedure {name} failed") from e

    def _has_role(self, params: dict) -> bool:
        from swiftlogix.models import UserRole

        with self._session_factory() as db:
            grant = (
                db.query(UserRole)
                .filter(UserRole.user_id == params.get("_user_id"), UserRole.role == params.get("_role"))
                .first()
            )
            return grant is not None

    def _verify_tracking_number(self, params: dict) -> dict:
        from swiftlogix.models import Shipment, TrackingSession

        number = normalize_tracking_number(params.get("p_tracking_number"))
        if not is_tracking_number(number):
            logger.info("Tracking number rejected: bad format")
            return {"success": False, "error": TRACKING_NOT_FOUND}

        with self._session_factory() as db:
            shipment = db.query(Shipment).filter(Shipment.tracking_number == number).first()
            if shipment is None:
                logger.info(f"Tracking number not found: {number}")
                return {"success": False, "error": TRACKING_NOT_FOUND}

            now = utc_now()
            token = secrets.token_urlsafe(32)
            db.add(TrackingSession(
                token=token,
                shipment_id=shipment.id,
                expires_at=utc_now_iso(now + self._tracking_ttl),
                created_at=utc_now_iso(now),
            ))
            db.commit()
            return {"success": True, "session_token": token, "shipment": _row_to_dict(shipment)}

    def _get_shipment_events(self, params: dict) -> dict:
        from swiftlogix.models import ShipmentEvent, TrackingSession

        token = params.get("p_session_token")
        if not token:
            return {"success": False, "error": TRACKING_SESSION_INVALID}

        with self._session_factory() as db:
            session = db.get(TrackingSession, token)
            if session is None or session.expires_at < utc_now_iso():
                return {"success": False, "error": TRACKING_SESSION_INVALID}

            events = (
                db.query(ShipmentEvent)
                .filter(ShipmentEvent.shipment_id == session.shipment_id)
                .order_by(ShipmentEvent.occurred_at.asc(), ShipmentEvent.created_at.asc())
                .all()
            )
            return {
                "success": True,
                "events": [
                    {
                        "id": event.id,
                        "status": event.status,
                        "location": event.location,
                        "description": event.description,
                        "occurred_at": event.occurred_at,
                    }
                    for event in events
                ],
            }

    def _create_shipment_from_order(self, params: dict) -> dict:
        from swiftlogix.models import Shipment, ShipmentEvent

        required = ("p_order_number", "p_origin_city", "p_origin_country",
                    "p_destination_city", "p_destination_country")
        missing = [name for name in required if not params.get(name)]
        if missing:
            raise BackendError(f"create_shipment_from_order missing parameters: {missing}")

        method = get_shipping_method(params.get("p_shipping_method") or "")
        transit_days = method.max_days if method else DEFAULT_TRANSIT_DAYS

        now = utc_now()
        stamp = utc_now_iso(now)
        shipment = Shipment(
            id=str(uuid.uuid4()),
            tracking_number=generate_tracking_number(now),
            status="pending",
            origin_city=params["p_origin_city"],
            origin_country=params["p_origin_country"],
            destination_city=params["p_destination_city"],
            destination_country=params["p_destination_country"],
            sender_name=params.get("p_sender_name"),
            recipient_name=params.get("p_recipient_name"),
            weight_kg=params.get("p_weight_kg"),
            estimated_delivery=(now + timedelta(days=transit_days)).date().isoformat(),
            created_at=stamp,
            updated_at=stamp,
        )
        event = ShipmentEvent(
            id=str(uuid.uuid4()),
            shipment_id=shipment.id,
            status="pending",
            location=f"{params['p_origin_city']}, {params['p_origin_country']}",
            description=f"Order {params['p_order_number']} received",
            occurred_at=stamp,
            created_at=stamp,
        )

        try:
            with self._session_factory() as db:
                db.add_all([shipment, event])
                db.commit()
                shipment_row = _row_to_dict(shipment)
                event_row = _row_to_dict(event)
        except IntegrityError as e:
            # Tracking numbers are random; a collision surfaces as a backend error
            raise BackendError("Tracking number collision, retry the procedure") from e

        logger.info(f"Created shipment {shipment_row['tracking_number']} for order {params['p_order_number']}")
        self.hub.publish(SHIPMENTS_TABLE, "INSERT", shipment_row)
        self.hub.publish(EVENTS_TABLE, "INSERT", event_row)
        return {
            "success": True,
            "shipment_id": shipment_row["id"],
            "tracking_number": shipment_row["tracking_number"],
        }

    # -- realtime -------------------------------------------------------------

    async def subscribe(
        self,
        table: str,
        column: str,
        value: Any,
        callback: ChangeCallback,
    ) -> Subscription:
        self._column(self._model(table), column)
        return self.hub.listen(table, column, value, callback)

    # -- auth -----------------------------------------------------------------

    async def get_user(self, access_token: str) -> Optional[AuthUser]:
        from swiftlogix.models import AuthSessionRecord

        if not access_token:
            return None
        with self._session_factory() as db:
            record = db.get(AuthSessionRecord, access_token)
            if record is None:
                return None
            return AuthUser(id=record.user_id, email=record.email)

    async def sign_in(self, email: str, password: str) -> AuthSession:
        raise BackendError("Password sign-in requires the hosted backend")

    async def sign_up(self, email: str, password: str) -> AuthSession:
        raise BackendError("Sign-up requires the hosted backend")

    async def sign_out(self, access_token: str) -> None:
        from swiftlogix.models import AuthSessionRecord

        with self._session_factory() as db:
            db.query(AuthSessionRecord).filter(AuthSessionRecord.access_token == access_token).delete()
            db.commit()

    async def issue_session(self, user_id: str, email: Optional[str] = None) -> AuthSession:
        """Mint an access token for a user (development and tests)."""
        from swiftlogix.models import AuthSessionRecord

        token = secrets.token_urlsafe(32)
        with self._session_factory() as db:
            db.add(AuthSessionRecord(
                access_token=token, user_id=user_id, email=email, created_at=utc_now_iso()
            ))
            db.commit()
        return AuthSession(access_token=token, user=AuthUser(id=user_id, email=email))

    async def grant_role(self, user_id: str, role: str) -> None:
        await self.insert("user_roles", {"user_id": user_id, "role": role})

    # -- health ---------------------------------------------------------------

    def check_health(self) -> tuple[bool, Optional[str]]:
        if not check_db_health():
            return False, "Database not reachable or schema not applied"
        return True, None
