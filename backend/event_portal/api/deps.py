"""
Shared FastAPI dependencies.
"""

from event_portal.db.session import AsyncSessionLocal
from event_portal.services.seat_ledger import SeatLedger
from event_portal.services.sql_seat_store import sql_unit_of_work_factory


def get_seat_ledger() -> SeatLedger:
    """Ledger bound to the application's database; each operation opens its own transaction."""
    return SeatLedger(sql_unit_of_work_factory(AsyncSessionLocal))
