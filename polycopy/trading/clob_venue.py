"""
Polymarket CLOB venue.

Signs and submits copy orders through py-clob-client using the private
key plus L2 API credentials. Calls are blocking; the order placer runs
them in a worker thread.
"""

import logging
from typing import Optional, Dict, Any

from eth_account import Account
from eth_account.signers.local import LocalAccount
from py_clob_client.client import ClobClient
from py_clob_client.clob_types import (
    ApiCreds,
    MarketOrderArgs,
    OrderArgs,
    OrderType,
)
from py_clob_client.order_builder.constants import BUY, SELL

from config.app_config import AppConfig
from core.types import Side, OrderRequest

logger = logging.getLogger(__name__)

ORDER_TYPES = {
    "FAK": OrderType.FAK,
    "FOK": OrderType.FOK,
    "GTC": OrderType.GTC,
    "GTD": OrderType.GTD,
}


def to_order_type(value: str) -> OrderType:
    """Map a configured order type name, defaulting to FAK."""
    return ORDER_TYPES.get((value or "").upper(), OrderType.FAK)


class ClobVenue:
    """
    Signer + submitter for the Polymarket CLOB.

    Attributes:
        account: Local signer derived from the private key
        client: The underlying py-clob-client ClobClient
    """

    def __init__(
        self,
        host: str,
        private_key: str,
        api_key: str,
        api_secret: str,
        api_passphrase: str,
        chain_id: int = 137,
        signature_type: int = 0,
        funder: Optional[str] = None,
    ):
        """
        Initialize the CLOB client.

        Args:
            host: CLOB REST host
            private_key: Wallet private key used to sign orders
            api_key: L2 API key
            api_secret: L2 API secret
            api_passphrase: L2 API passphrase
            chain_id: Chain id (137 = Polygon)
            signature_type: 0 = EOA, 1 = POLY_PROXY, 2 = POLY_GNOSIS_SAFE
            funder: Address holding the funds, if not the signer
        """
        self.host = host
        self.account: LocalAccount = Account.from_key(private_key)
        self.client = ClobClient(
            host=host,
            key=private_key,
            chain_id=chain_id,
            creds=ApiCreds(
                api_key=api_key,
                api_secret=api_secret,
                api_passphrase=api_passphrase,
            ),
            signature_type=signature_type,
            funder=funder,
        )
        logger.info(
            f"CLOB venue ready ({host}, signer {self.account.address}, "
            f"signature type {signature_type})"
        )

    @classmethod
    def from_config(cls, config: AppConfig) -> Optional["ClobVenue"]:
        """Build a venue, or None when signing material is incomplete."""
        if not config.has_clob_credentials:
            return None
        return cls(
            host=config.clob_rest_url,
            private_key=config.private_key,
            api_key=config.clob_api_key,
            api_secret=config.clob_api_secret,
            api_passphrase=config.clob_api_passphrase,
            chain_id=config.chain_id,
            signature_type=config.signature_type,
            funder=config.funding_address,
        )

    def submit(self, order: OrderRequest) -> Dict[str, Any]:
        """
        Sign and post an order.

        Args:
            order: Rounded order request

        Returns:
            Venue response dict

        Raises:
            Exception: Whatever py-clob-client raises on rejection
        """
        side = BUY if order.side == Side.BUY else SELL
        order_type = to_order_type(order.order_type)

        if order.is_market:
            signed = self.client.create_market_order(
                MarketOrderArgs(
                    token_id=order.token_id,
                    amount=float(order.amount),
                    side=side,
                    price=float(order.price),
                    order_type=order_type,
                )
            )
        else:
            signed = self.client.create_order(
                OrderArgs(
                    token_id=order.token_id,
                    price=float(order.price),
                    size=float(order.size),
                    side=side,
                )
            )

        response = self.client.post_order(signed, order_type)
        if isinstance(response, dict) and response.get("success") is False:
            raise RuntimeError(response.get("errorMsg") or "order rejected")
        return response


def order_id_from_response(response: Any) -> Optional[str]:
    """Extract the venue order id from a post_order response."""
    if isinstance(response, dict):
        order_id = response.get("orderID") or response.get("orderId") or response.get("id")
        return str(order_id) if order_id else None
    if response:
        return str(response)
    return None
