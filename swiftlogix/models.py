"""
SQLAlchemy ORM models for the local backend tables.

The columns mirror the hosted backend's public schema so that the same
row dictionaries flow through either backend. Timestamps are stored as
fixed-width ISO-8601 UTC strings (see utils.utc_now_iso).
For Pydantic request/response schemas, see schemas.py.
"""

from sqlalchemy import Boolean, Column, Float, String, Text, UniqueConstraint

from swiftlogix.storage import Base


class ShippingOrder(Base):
    """
    Order placed through the ship-now flow.

    Table: shipping_orders
    """
    __tablename__ = "shipping_orders"

    id = Column(String, primary_key=True)
    order_number = Column(String, nullable=False, index=True)
    status = Column(String, nullable=False, default="pending")

    origin_name = Column(String, nullable=False)
    origin_address = Column(String, nullable=False)
    origin_city = Column(String, nullable=False)
    origin_country = Column(String, nullable=False)
    origin_phone = Column(String, nullable=False)
    origin_email = Column(String, nullable=False)

    destination_name = Column(String, nullable=False)
    destination_address = Column(String, nullable=False)
    destination_city = Column(String, nullable=False)
    destination_country = Column(String, nullable=False)
    destination_phone = Column(String, nullable=False)
    destination_email = Column(String, nullable=True)

    weight_kg = Column(Float, nullable=False)
    length_cm = Column(Float, nullable=True)
    width_cm = Column(Float, nullable=True)
    height_cm = Column(Float, nullable=True)
    package_description = Column(Text, nullable=True)
    declared_value = Column(Float, nullable=True)
    currency = Column(String, nullable=True, default="USD")

    shipping_method = Column(String, nullable=False, default="standard")
    insurance_included = Column(Boolean, nullable=True, default=False)
    quoted_price = Column(Float, nullable=False)

    session_id = Column(String, nullable=False)
    user_id = Column(String, nullable=True, index=True)
    created_at = Column(String, nullable=False, index=True)
    updated_at = Column(String, nullable=False)


class Shipment(Base):
    """
    Trackable shipment keyed by tracking number.

    Table: shipments
    """
    __tablename__ = "shipments"

    id = Column(String, primary_key=True)
    tracking_number = Column(String, nullable=False, unique=True, index=True)
    status = Column(String, nullable=False, default="pending")
    origin_city = Column(String, nullable=False)
    origin_country = Column(String, nullable=False)
    destination_city = Column(String, nullable=False)
    destination_country = Column(String, nullable=False)
    sender_name = Column(String, nullable=True)
    recipient_name = Column(String, nullable=True)
    weight_kg = Column(Float, nullable=True)
    estimated_delivery = Column(String, nullable=True)
    actual_delivery = Column(String, nullable=True)
    created_at = Column(String, nullable=False, index=True)
    updated_at = Column(String, nullable=False)


class ShipmentEvent(Base):
    """
    Append-only history entry of a shipment.

    Table: shipment_events
    """
    __tablename__ = "shipment_events"

    id = Column(String, primary_key=True)
    shipment_id = Column(String, nullable=False, index=True)
    status = Column(String, nullable=False)
    location = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    occurred_at = Column(String, nullable=False, index=True)
    created_at = Column(String, nullable=False)


class ChatMessage(Base):
    """
    Chat transcript entry scoped to a client session id.

    Table: chat_messages
    """
    __tablename__ = "chat_messages"

    id = Column(String, primary_key=True)
    session_id = Column(String, nullable=False, index=True)
    role = Column(String, nullable=False)  # user | assistant
    content = Column(Text, nullable=False)
    created_at = Column(String, nullable=False, index=True)


class UserRole(Base):
    """Role grants consulted by the has_role procedure."""
    __tablename__ = "user_roles"
    __table_args__ = (UniqueConstraint("user_id", "role"),)

    id = Column(String, primary_key=True)
    user_id = Column(String, nullable=False, index=True)
    role = Column(String, nullable=False)
    created_at = Column(String, nullable=False)


class AuthSessionRecord(Base):
    """Access tokens minted for development sessions."""
    __tablename__ = "auth_sessions"

    access_token = Column(String, primary_key=True)
    user_id = Column(String, nullable=False, index=True)
    email = Column(String, nullable=True)
    created_at = Column(String, nullable=False)


class TrackingSession(Base):
    """Opaque token scoping event reads to one verified shipment."""
    __tablename__ = "tracking_sessions"

    token = Column(String, primary_key=True)
    shipment_id = Column(String, nullable=False)
    expires_at = Column(String, nullable=False)
    created_at = Column(String, nullable=False)
