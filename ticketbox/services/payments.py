# ticketbox/services/payments.py
"""Payment gateway boundary and order payment reconciliation.

Reconciliation only touches an order's payment fields. Inventory was committed when
the tickets were booked, so nothing here reserves or releases capacity.
"""
from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Optional

import stripe

from ticketbox.constants import PAYMENT_COMPLETED, PAYMENT_PENDING
from ticketbox.errors import AlreadyInTerminalState, UpstreamFailure, ValidationFailed
from ticketbox.policy import Action, Actor, Resource, require
from ticketbox.services.orders import OrderAggregator

logger = logging.getLogger(__name__)

# Gateway statuses that mean the money has been taken.
PAID_STATUSES = ("capture", "settlement")


def map_gateway_status(status: Optional[str]) -> Optional[str]:
    """Order payment status for a gateway status, or None if still unresolved."""
    if (status or "").strip().lower() in PAID_STATUSES:
        return PAYMENT_COMPLETED
    return None


@dataclass(frozen=True)
class ChargeHandle:
    charge_id: str
    status: str = ""
    client_secret: Optional[str] = None


class PaymentGateway(ABC):
    @abstractmethod
    def create_charge(self, order_ref: str, amount: float, customer: Dict[str, Any]) -> ChargeHandle:
        ...

    @abstractmethod
    def get_charge_status(self, handle: ChargeHandle) -> str:
        ...


class StripeGateway(PaymentGateway):
    """PaymentIntents-backed gateway; Stripe statuses are reported in the
    capture/settlement vocabulary used by ``map_gateway_status``."""

    STATUS_MAP = {"succeeded": "settlement", "requires_capture": "capture"}

    def __init__(self, api_key: str, currency: str = "usd", max_network_retries: int = 2):
        if not api_key:
            raise ValueError("A Stripe secret key is required")
        self.api_key = api_key
        self.currency = currency
        stripe.max_network_retries = max_network_retries

    def _normalize(self, status: str) -> str:
        return self.STATUS_MAP.get(status, status)

    def create_charge(self, order_ref: str, amount: float, customer: Dict[str, Any]) -> ChargeHandle:
        try:
            intent = stripe.PaymentIntent.create(
                api_key=self.api_key,
                amount=int(round(amount * 100)),
                currency=self.currency,
                receipt_email=customer.get("email") or None,
                metadata={"order_id": order_ref, "user_id": customer.get("id", "")},
            )
        except stripe.StripeError as e:
            logger.error("Stripe charge creation failed for order %s: %s", order_ref, e)
            raise UpstreamFailure("Payment gateway error.", details={"detail": str(e)})
        return ChargeHandle(
            charge_id=intent.id, status=self._normalize(intent.status), client_secret=intent.client_secret
        )

    def get_charge_status(self, handle: ChargeHandle) -> str:
        try:
            intent = stripe.PaymentIntent.retrieve(handle.charge_id, api_key=self.api_key)
        except stripe.StripeError as e:
            logger.error("Stripe status lookup failed for %s: %s", handle.charge_id, e)
            raise UpstreamFailure("Payment gateway error.", details={"detail": str(e)})
        return self._normalize(intent.status)


class PaymentReconciler:
    def __init__(self, orders: OrderAggregator, gateway: Optional[PaymentGateway] = None):
        self.orders = orders
        self.gateway = gateway

    def _require_gateway(self) -> PaymentGateway:
        if self.gateway is None:
            raise UpstreamFailure("Payment gateway is not configured.")
        return self.gateway

    def reconcile(self, order_id, status: str, transaction_id: Optional[str] = None) -> Dict[str, Any]:
        order = self.orders.find(order_id)
        mapped = map_gateway_status(status)
        updated = self.orders.set_payment(order["_id"], mapped, transaction_id)
        logger.info(
            "Order %s payment notification %r -> %s", order["_id"], status, updated.get("payment_status")
        )
        return updated

    def request_charge(self, order_id, actor: Actor, customer: Dict[str, Any]) -> ChargeHandle:
        order = self.orders.find(order_id)
        require(
            actor,
            Action.VIEW_ORDER,
            Resource(owner_id=str(order["user_id"])),
            "Access denied. You can only pay for your own orders.",
        )
        if order.get("payment_status") != PAYMENT_PENDING:
            raise AlreadyInTerminalState(
                "Order is not awaiting payment.", details={"payment_status": order.get("payment_status")}
            )
        handle = self._require_gateway().create_charge(str(order["_id"]), float(order["total_amount"]), customer)
        self.orders.set_payment(order["_id"], None, handle.charge_id)
        return handle

    def refresh_from_gateway(self, order_id) -> Dict[str, Any]:
        """Ask the gateway for the charge status instead of trusting a callback body."""
        order = self.orders.find(order_id)
        if not order.get("transaction_id"):
            raise ValidationFailed("Order has no charge to check.", details={"field": "transaction_id"})
        status = self._require_gateway().get_charge_status(ChargeHandle(charge_id=order["transaction_id"]))
        return self.reconcile(order["_id"], status)
