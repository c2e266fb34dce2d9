"""Tests for donation scheduling, completion, walk-ins and donation history."""
from datetime import timedelta

import pytest

from bloodchain.core.clock import EPOCH, to_epoch
from bloodchain.core.exceptions import (
    AlreadyCompleted,
    DuplicateSchedule,
    EligibilityWindowViolation,
    InvalidSchedule,
    NotRegistered,
    ScheduleNotFound,
)
from bloodchain.models.donor import BloodGroup
from bloodchain.schemas.donation import DonationStatus
from bloodchain.services.events import DonationRecorded, DonationScheduled, InventoryAdjusted, RewardPointsUpdated

from conftest import T0

HOSPITAL = "St Mary"


@pytest.fixture
def donor(coordinator):
    return coordinator.donors.register_donor("donor-1", "O+")


def test_schedule_donation(coordinator, donor, recorder):
    when = T0 + timedelta(days=10)

    donation = coordinator.scheduling.schedule_donation("donor-1", HOSPITAL, "first visit", when)

    assert donation.id == to_epoch(when)
    assert donation.scheduled_for == when
    assert donation.hospital == HOSPITAL
    assert not donation.completed
    assert donation.status == DonationStatus.SCHEDULED
    # scheduling alone does not move the eligibility window
    assert coordinator.donors.get_donor("donor-1").last_donation_time == EPOCH
    assert [e.entity_id for e in recorder.of_type(DonationScheduled)] == [donation.key]


def test_schedule_accepts_epoch_seconds(coordinator, donor):
    when = T0 + timedelta(days=3)

    donation = coordinator.scheduling.schedule_donation("donor-1", HOSPITAL, "", to_epoch(when))

    assert donation.scheduled_for == when


def test_schedule_in_past_or_now_is_rejected(coordinator, donor):
    with pytest.raises(InvalidSchedule):
        coordinator.scheduling.schedule_donation("donor-1", HOSPITAL, "", T0)
    with pytest.raises(InvalidSchedule):
        coordinator.scheduling.schedule_donation("donor-1", HOSPITAL, "", T0 - timedelta(hours=1))

    assert coordinator.scheduling.list_scheduled_donations("donor-1") == []


def test_schedule_unregistered_donor(coordinator):
    with pytest.raises(NotRegistered):
        coordinator.scheduling.schedule_donation("ghost", HOSPITAL, "", T0 + timedelta(days=1))


def test_duplicate_schedule(coordinator, donor):
    when = T0 + timedelta(days=5)
    coordinator.scheduling.schedule_donation("donor-1", HOSPITAL, "", when)

    with pytest.raises(DuplicateSchedule):
        coordinator.scheduling.schedule_donation("donor-1", "Other Hospital", "", when)

    assert len(coordinator.scheduling.list_scheduled_donations("donor-1")) == 1


def test_eligibility_window_scenario(coordinator, donor, recorder):
    first = T0 + timedelta(days=10)
    coordinator.scheduling.schedule_donation("donor-1", HOSPITAL, "", first)

    completed = coordinator.scheduling.complete_scheduled_donation("donor-1", first)

    assert completed.completed
    assert completed.points_earned == 10
    assert completed.completed_at == T0
    donor = coordinator.donors.get_donor("donor-1")
    assert donor.last_donation_time == first
    assert donor.reward_points == 10

    with pytest.raises(EligibilityWindowViolation) as exc_info:
        coordinator.scheduling.schedule_donation("donor-1", HOSPITAL, "", T0 + timedelta(days=50))
    assert exc_info.value.context["next_eligible_time"] == first + timedelta(days=90)

    later = coordinator.scheduling.schedule_donation("donor-1", HOSPITAL, "", T0 + timedelta(days=101))
    assert later.scheduled_for == T0 + timedelta(days=101)


def test_completion_is_applied_once(coordinator, donor, recorder):
    when = T0 + timedelta(days=1)
    coordinator.scheduling.schedule_donation("donor-1", HOSPITAL, "", when)
    coordinator.scheduling.complete_scheduled_donation("donor-1", when)

    with pytest.raises(AlreadyCompleted):
        coordinator.scheduling.complete_scheduled_donation("donor-1", when)

    assert coordinator.donors.get_donor("donor-1").reward_points == 10
    assert len(recorder.of_type(DonationRecorded)) == 1
    assert len(recorder.of_type(RewardPointsUpdated)) == 1
    assert coordinator.inventory.get_units(HOSPITAL, "O+") == 1


def test_complete_unknown_donation(coordinator, donor):
    with pytest.raises(ScheduleNotFound):
        coordinator.scheduling.complete_scheduled_donation("donor-1", T0 + timedelta(days=1))
    assert coordinator.donors.get_donor("donor-1").reward_points == 0


def test_completion_credits_hospital_inventory(coordinator, donor, recorder):
    when = T0 + timedelta(days=2)
    coordinator.scheduling.schedule_donation("donor-1", HOSPITAL, "", when)

    coordinator.scheduling.complete_scheduled_donation("donor-1", when)

    assert coordinator.inventory.get_units(HOSPITAL, BloodGroup.O_POS) == 1
    adjusted = recorder.of_type(InventoryAdjusted)
    assert [(e.hospital, e.blood_group, e.delta) for e in adjusted] == [(HOSPITAL, BloodGroup.O_POS, 1)]


def test_completion_events_follow_commit_order(coordinator, donor, recorder):
    when = T0 + timedelta(days=2)
    coordinator.scheduling.schedule_donation("donor-1", HOSPITAL, "", when)
    recorder.events.clear()

    coordinator.scheduling.complete_scheduled_donation("donor-1", when)

    assert recorder.names() == ["DonationRecorded", "RewardPointsUpdated", "InventoryAdjusted"]


def test_points_are_ten_per_completed_donation(coordinator, clock, donor):
    for n in range(1, 5):
        when = clock.now + timedelta(days=1)
        coordinator.scheduling.schedule_donation("donor-1", HOSPITAL, "", when)
        coordinator.scheduling.complete_scheduled_donation("donor-1", when)
        assert coordinator.donors.get_donor("donor-1").reward_points == 10 * n
        clock.advance(days=120)

    summary = coordinator.donors.get_reward_summary("donor-1")
    assert summary.completed_donations == 4
    assert summary.reward_points == 40


def test_last_donation_time_never_moves_backwards(coordinator, donor):
    early = T0 + timedelta(days=1)
    late = T0 + timedelta(days=200)
    coordinator.scheduling.schedule_donation("donor-1", HOSPITAL, "", early)
    coordinator.scheduling.schedule_donation("donor-1", HOSPITAL, "", late)

    coordinator.scheduling.complete_scheduled_donation("donor-1", late)
    coordinator.scheduling.complete_scheduled_donation("donor-1", early)

    assert coordinator.donors.get_donor("donor-1").last_donation_time == late


def test_walk_in_donation(coordinator, donor, recorder):
    donation = coordinator.scheduling.record_donation("donor-1", HOSPITAL, "walk-in")

    assert donation.completed
    assert donation.scheduled_for == T0
    assert donation.points_earned == 10
    donor = coordinator.donors.get_donor("donor-1")
    assert donor.last_donation_time == T0
    assert donor.reward_points == 10
    assert coordinator.inventory.get_units(HOSPITAL, "O+") == 1
    assert recorder.names()[-4:] == [
        "DonationScheduled", "DonationRecorded", "RewardPointsUpdated", "InventoryAdjusted",
    ]


def test_walk_in_respects_eligibility_window(coordinator, clock, donor):
    coordinator.scheduling.record_donation("donor-1", HOSPITAL)
    clock.advance(days=30)

    with pytest.raises(EligibilityWindowViolation):
        coordinator.scheduling.record_donation("donor-1", HOSPITAL)

    assert coordinator.donors.get_donor("donor-1").reward_points == 10
    assert len(coordinator.scheduling.list_scheduled_donations("donor-1")) == 1


def test_list_scheduled_donations(coordinator, donor):
    later = T0 + timedelta(days=20)
    sooner = T0 + timedelta(days=5)
    coordinator.scheduling.schedule_donation("donor-1", HOSPITAL, "", later)
    coordinator.scheduling.schedule_donation("donor-1", HOSPITAL, "", sooner)
    coordinator.scheduling.complete_scheduled_donation("donor-1", sooner)

    all_donations = coordinator.scheduling.list_scheduled_donations("donor-1")
    pending = coordinator.scheduling.list_scheduled_donations("donor-1", pending_only=True)

    assert [d.scheduled_for for d in all_donations] == [sooner, later]
    assert [d.scheduled_for for d in pending] == [later]


def test_list_for_unregistered_donor(coordinator):
    with pytest.raises(NotRegistered):
        coordinator.scheduling.list_scheduled_donations("ghost")


def test_donation_history(coordinator, donor):
    first = T0 + timedelta(days=1)
    second = T0 + timedelta(days=100)
    coordinator.scheduling.schedule_donation("donor-1", HOSPITAL, "a", first)
    coordinator.scheduling.schedule_donation("donor-1", "General", "b", second)
    coordinator.scheduling.complete_scheduled_donation("donor-1", first)

    history = coordinator.scheduling.donation_history("donor-1")

    assert [h.scheduled_for for h in history] == [second, first]
    assert [h.status for h in history] == [DonationStatus.SCHEDULED, DonationStatus.COMPLETED]
    assert history[1].points_earned == 10
    assert history[0].points_earned == 0
    # a completed donation appears once, not once as scheduled and again as completed
    assert len({h.id for h in history}) == len(history)
