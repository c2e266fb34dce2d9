"""Tests for the domain event bus."""
from datetime import timedelta

import logging

import pytest

from bloodchain.core.exceptions import InvalidSchedule
from bloodchain.services.events import (
    DomainEvent,
    DonorRegistered,
    EventBus,
    InventoryAdjusted,
    RewardPointsUpdated,
    log_domain_event,
)

from bloodchain.services.coordinator import BloodBankCoordinator

from conftest import T0, make_settings


def test_subscribe_by_type():
    bus = EventBus()
    seen_all, seen_inventory = [], []
    bus.subscribe(seen_all.append)
    bus.subscribe(seen_inventory.append, InventoryAdjusted)

    registered = DonorRegistered(entity_id="donor-1", occurred_at=T0, blood_group="O+")
    adjusted = InventoryAdjusted(
        entity_id="General:O+", occurred_at=T0, hospital="General", blood_group="O+", units=1, delta=1
    )
    bus.publish([registered, adjusted])

    assert seen_all == [registered, adjusted]
    assert seen_inventory == [adjusted]


def test_unsubscribe():
    bus = EventBus()
    seen = []
    unsubscribe = bus.subscribe(seen.append)
    unsubscribe()

    bus.publish([DomainEvent(entity_id="x", occurred_at=T0)])

    assert seen == []


def test_failing_observer_does_not_break_operation(coordinator, recorder):
    def broken(event):
        raise RuntimeError("observer down")

    coordinator.events.subscribe(broken)
    later = []
    coordinator.events.subscribe(later.append)

    donor = coordinator.donors.register_donor("donor-1", "O+")

    assert donor.identity == "donor-1"
    assert coordinator.donors.is_registered("donor-1")
    assert [e.name for e in later] == ["DonorRegistered"]


def test_events_are_published_after_commit(coordinator):
    coordinator.donors.register_donor("donor-1", "O+")
    observed = []

    def check_ledger(event):
        observed.append((event.reward_points, coordinator.donors.get_donor("donor-1").reward_points))

    coordinator.events.subscribe(check_ledger, RewardPointsUpdated)
    when = T0 + timedelta(days=1)
    coordinator.scheduling.schedule_donation("donor-1", "General", "", when)
    coordinator.scheduling.complete_scheduled_donation("donor-1", when)

    assert observed == [(10, 10)]


def test_no_events_for_rejected_operations(coordinator, recorder):
    coordinator.donors.register_donor("donor-1", "O+")
    recorder.events.clear()

    with pytest.raises(InvalidSchedule):
        coordinator.scheduling.schedule_donation("donor-1", "General", "", T0 - timedelta(days=1))

    assert recorder.events == []


def test_event_log_line(caplog):
    adjusted = InventoryAdjusted(
        entity_id="General:O+", occurred_at=T0, hospital="General", blood_group="O+", units=3, delta=-2
    )

    with caplog.at_level(logging.INFO, logger="bloodchain.events"):
        log_domain_event(adjusted)

    assert caplog.records[-1].name == "bloodchain.events"
    assert caplog.records[-1].getMessage() == (
        "InventoryAdjusted General:O+: hospital=General blood_group=O+ units=3 delta=-2"
    )


def test_coordinator_logs_committed_events(coordinator, caplog):
    with caplog.at_level(logging.INFO, logger="bloodchain.events"):
        coordinator.donors.register_donor("donor-1", "B-")

    lines = [r.getMessage() for r in caplog.records if r.name == "bloodchain.events"]
    assert lines == ["DonorRegistered donor-1: blood_group=B-"]


def test_event_logging_can_be_switched_off(clock, caplog):
    coordinator = BloodBankCoordinator(clock=clock, config=make_settings(LOG_EVENTS=False))

    with caplog.at_level(logging.INFO, logger="bloodchain.events"):
        coordinator.inventory.adjust_units("General", "O+", 1)

    assert [r for r in caplog.records if r.name == "bloodchain.events"] == []
