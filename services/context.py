from dataclasses import dataclass

from flask import current_app

from services.card import CardGateway
from services.mpesa import MpesaClient
from services.notifications import Notifier
from services.store import BookingStore, build_store

EXTENSION_KEY = "seatclean"


@dataclass
class Services:
    """Process-lifetime collaborators shared by the request handlers."""
    store: BookingStore
    mpesa: MpesaClient
    card: CardGateway
    notifier: Notifier


def build_services(config) -> Services:
    return Services(
        store=build_store(config),
        mpesa=MpesaClient.from_config(config),
        card=CardGateway.from_config(config),
        notifier=Notifier.from_config(config),
    )


def get_services() -> Services:
    return current_app.extensions[EXTENSION_KEY]
