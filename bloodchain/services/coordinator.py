"""
Wiring of the donation/inventory core: one ledger, one event bus, one lock
registry shared by every service.
"""
import logging
from datetime import timedelta
from typing import Optional

from bloodchain.core.clock import Clock, utcnow
from bloodchain.core.config import Settings, settings as default_settings
from bloodchain.services.donor_registry import DonorRegistry
from bloodchain.services.events import EventBus, log_domain_event
from bloodchain.services.inventory import InventoryService
from bloodchain.services.ledger import InMemoryLedger, Ledger
from bloodchain.services.locks import LockRegistry
from bloodchain.services.request_lifecycle import RequestLifecycle
from bloodchain.services.scheduling import SchedulingEngine

logger = logging.getLogger(__name__)


class BloodBankCoordinator:

    def __init__(
        self,
        ledger: Optional[Ledger] = None,
        events: Optional[EventBus] = None,
        clock: Clock = utcnow,
        config: Optional[Settings] = None,
    ):
        config = config or default_settings
        self.config = config
        self.ledger = ledger if ledger is not None else InMemoryLedger()
        self.events = events if events is not None else EventBus()
        self.locks = LockRegistry()
        self.clock = clock
        if config.LOG_EVENTS:
            self.events.subscribe(log_domain_event)

        shared = dict(ledger=self.ledger, events=self.events, locks=self.locks, clock=clock)
        interval = timedelta(days=config.MINIMUM_DONATION_INTERVAL_DAYS)

        self.inventory = InventoryService(**shared)
        self.donors = DonorRegistry(**shared, interval=interval)
        self.scheduling = SchedulingEngine(
            **shared,
            donors=self.donors,
            inventory=self.inventory,
            interval=interval,
            points_per_donation=config.REWARD_POINTS_PER_DONATION,
            units_per_donation=config.UNITS_PER_DONATION,
        )
        self.requests = RequestLifecycle(
            **shared,
            inventory=self.inventory,
            allow_direct_fulfillment=config.ALLOW_DIRECT_FULFILLMENT,
        )


def build_coordinator(config: Optional[Settings] = None, clock: Clock = utcnow) -> BloodBankCoordinator:
    """Coordinator over the SQL ledger when DATABASE_URL is set, otherwise in memory."""
    config = config or default_settings
    if config.DATABASE_URL:
        from bloodchain.services.sql_ledger import SqlAlchemyLedger

        ledger = SqlAlchemyLedger(database_url=config.DATABASE_URL)
        logger.info("Using SQL ledger")
    else:
        ledger = InMemoryLedger()
        logger.info("DATABASE_URL not set; using in-memory ledger")
    return BloodBankCoordinator(ledger=ledger, clock=clock, config=config)
