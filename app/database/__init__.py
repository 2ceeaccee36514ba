"""Database module for SQLAlchemy models and session management."""

from app.database.base import Base, engine
from app.database.client import DatabaseClient, db_client, init_database, close_database
from app.database.models import (
    Call,
    Contact,
    CrmTask,
    Customer,
    CustomerIdentity,
    CustomerScore,
    CustomerSnapshot,
    Estimate,
    Interaction,
    Invoice,
    Opportunity,
    Order,
    RagSource,
    Shipment,
    Ticket,
)
from app.database.session import get_async_session

__all__ = [
    "Base",
    "engine",
    "get_async_session",
    "DatabaseClient",
    "db_client",
    "init_database",
    "close_database",
    "Customer",
    "CustomerIdentity",
    "Interaction",
    "Order",
    "Ticket",
    "Contact",
    "Call",
    "Opportunity",
    "CrmTask",
    "Invoice",
    "Shipment",
    "Estimate",
    "RagSource",
    "CustomerScore",
    "CustomerSnapshot",
]
