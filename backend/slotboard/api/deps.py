"""
FastAPI dependencies resolving the services created in the lifespan.
"""

from fastapi import Request

from slotboard.db.session import Database
from slotboard.services.booking_ledger import BookingLedger


def get_ledger(request: Request) -> BookingLedger:
    return request.app.state.ledger


def get_database(request: Request) -> Database:
    return request.app.state.database
