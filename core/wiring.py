"""
Assembly of the production collaborators.

    collaborators = collaborators_from_vault()
    payment = Payment.load(collaborators, 42)
"""

import logging

from clients.postgres_client import PostgresClient
from clients.valkey_client import ValkeyClient
from clients.vault_client import get_database_url, get_install_secret, get_valkey_url
from core.audit import AuditLogger
from core.collaborators import PaymentCollaborators
from core.config import PaymentConfig
from core.event_bus import EventBus
from core.hooks import PaymentHooks
from core.services.catalog_service import CatalogService
from core.services.customer_service import CustomerService
from core.services.discount_service import DiscountService
from core.services.payment_store import PostgresPaymentStore
from core.services.sales_ledger import SalesLedgerService
from core.services.store_stats_service import StoreStatsService

logger = logging.getLogger(__name__)


def build_collaborators(
    postgres: PostgresClient,
    valkey: ValkeyClient,
    config: PaymentConfig | None = None,
    hooks: PaymentHooks | None = None,
    event_bus: EventBus | None = None,
) -> PaymentCollaborators:
    """Postgres/Valkey-backed collaborators sharing one audit logger."""
    audit = AuditLogger(postgres)
    return PaymentCollaborators(
        store=PostgresPaymentStore(postgres),
        catalog=CatalogService(postgres),
        customers=CustomerService(postgres, audit),
        sales=SalesLedgerService(postgres),
        discounts=DiscountService(postgres),
        stats=StoreStatsService(postgres, valkey),
        config=config or PaymentConfig(),
        hooks=hooks,
        event_bus=event_bus if event_bus is not None else EventBus(),
        audit=audit,
    )


def collaborators_from_vault(**config_overrides) -> PaymentCollaborators:
    """Connect with URLs and the install secret from Vault."""
    config = PaymentConfig(install_secret=get_install_secret(), **config_overrides)
    postgres = PostgresClient(get_database_url())
    valkey = ValkeyClient(get_valkey_url())
    logger.info("Payment collaborators connected")
    return build_collaborators(postgres, valkey, config=config)
