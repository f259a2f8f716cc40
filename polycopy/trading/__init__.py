"""
Order venue integration (Polymarket CLOB).
"""

from .clob_venue import ClobVenue, to_order_type, order_id_from_response

__all__ = [
    "ClobVenue",
    "to_order_type",
    "order_id_from_response",
]
