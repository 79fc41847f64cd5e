# ticketbox/services/__init__.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Optional

from ticketbox.services.booking import BookingResult, BookingService
from ticketbox.services.events import EventService
from ticketbox.services.ledger import InventoryLedger
from ticketbox.services.orders import OrderAggregator
from ticketbox.services.payments import PaymentGateway, PaymentReconciler
from ticketbox.services.tickets import TicketLifecycle
from ticketbox.services.users import UserService
from ticketbox.services.vendors import VendorService
from ticketbox.stores.interfaces import DocumentStore


@dataclass
class Services:
    store: DocumentStore
    ledger: InventoryLedger
    tickets: TicketLifecycle
    orders: OrderAggregator
    booking: BookingService
    payments: PaymentReconciler
    events: EventService
    vendors: VendorService
    users: UserService
    payment_mode: str


def build_services(
    store: DocumentStore, config: Mapping[str, Any], gateway: Optional[PaymentGateway] = None
) -> Services:
    ledger = InventoryLedger(store)
    tickets = TicketLifecycle(store, ledger)
    orders = OrderAggregator(store)
    payment_mode = config["PAYMENT_MODE"]
    return Services(
        store=store,
        ledger=ledger,
        tickets=tickets,
        orders=orders,
        booking=BookingService(store, tickets, orders, payment_mode),
        payments=PaymentReconciler(orders, gateway),
        events=EventService(store, ledger),
        vendors=VendorService(store),
        users=UserService(store),
        payment_mode=payment_mode,
    )


__all__ = ["BookingResult", "Services", "build_services"]
