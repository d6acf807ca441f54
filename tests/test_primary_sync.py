"""Tests for the primary-side sync coordinator."""

import pytest

from codesync.messages import PushBatch, decode_message, encode_increment_counter, encode_request_update
from codesync.primary import PrimarySync
from codesync.scheduler import ThreadedScheduler
from otp_engine.models import Credential


@pytest.fixture
def pushes(link):
    """Batches arriving at the secondary end of the link."""
    received = []
    link.secondary.set_receiver(lambda payload: received.append(decode_message(payload)))
    return received


class TestPush:
    def test_push_sends_visible_batch(self, store, primary, link, pushes, totp_credential, hotp_credential):
        store.add(totp_credential)
        store.add(hotp_credential)
        store.set_secondary_visible("totp-1", False)
        link.deliver_all()
        del pushes[:]

        assert primary.push()
        link.deliver_all()
        assert len(pushes) == 1
        assert isinstance(pushes[0], PushBatch)
        assert [s.id for s in pushes[0].code_infos] == ["hotp-1"]

    def test_batch_stamped_with_primary_clock(self, store, primary, clock, totp_credential):
        store.add(totp_credential)
        assert {s.generated_at for s in primary.build_batch()} == {clock()}

    def test_push_while_unreachable(self, primary, link):
        link.disconnect()
        assert primary.push() is False
        assert link.sent_count == 0

    def test_empty_store_pushes_empty_batch(self, primary, link, pushes):
        assert primary.push()
        link.deliver_all()
        assert pushes[0].code_infos == []


class TestTriggers:
    def test_scheduled_pushes(self, primary, scheduler, link):
        primary.start()
        assert link.sent_count == 0
        scheduler.advance(5)
        assert link.sent_count == 1
        scheduler.advance(10)
        assert link.sent_count == 3

    def test_store_change_pushes(self, store, primary, link, totp_credential):
        primary.start()
        store.add(totp_credential)
        assert link.sent_count == 1
        store.delete(totp_credential.id)
        assert link.sent_count == 2

    def test_group_change_pushes(self, store, primary, link):
        primary.start()
        store.delete_group(store.groups[0].id)
        assert link.sent_count == 1

    def test_request_update_pushes(self, primary, link):
        primary.start()
        link.secondary.send(encode_request_update())
        link.deliver_next()
        assert link.sent_count == 2
        assert link.pending_count == 1

    def test_not_subscribed_before_start(self, store, primary, link, totp_credential):
        store.add(totp_credential)
        assert link.sent_count == 0

    def test_stop(self, store, primary, scheduler, link, totp_credential):
        primary.start()
        primary.stop()
        assert not primary.running
        scheduler.advance(30)
        store.add(totp_credential)
        assert link.sent_count == 0

    def test_start_twice_schedules_once(self, primary, scheduler):
        primary.start()
        primary.start()
        assert len(scheduler.tasks) == 1


class TestIncrementCounter:
    def test_advances_and_pushes(self, store, primary, link, pushes, hotp_credential):
        store.add(hotp_credential)
        primary.start()
        link.secondary.send(encode_increment_counter("hotp-1"))
        link.deliver_all()
        assert store.get("hotp-1").counter == 1
        assert pushes[-1].code_infos[0].counter == 1

    def test_unknown_id_ignored(self, store, primary, link, hotp_credential):
        store.add(hotp_credential)
        primary.start()
        link.secondary.send(encode_increment_counter("missing"))
        link.deliver_all()
        assert store.get("hotp-1").counter == 0
        assert link.sent_count == 1

    def test_totp_id_ignored(self, store, primary, link):
        store.add(Credential(name="t", secret="JBSWY3DPEHPK3PXP", id="t"))
        primary.start()
        link.secondary.send(encode_increment_counter("t"))
        link.deliver_all()
        assert link.sent_count == 1

    def test_garbage_ignored(self, primary, link):
        primary.start()
        link.secondary.send(b"garbage")
        link.deliver_all()
        assert link.sent_count == 1


class TestSchedulerOwnership:
    def test_stop_shuts_down_own_scheduler(self, store, link, clock):
        primary = PrimarySync(store, link.primary, clock=clock, push_interval=60)
        primary.start()
        assert primary.scheduler.running
        primary.stop()
        assert not primary.scheduler.running

    def test_restart_after_stop(self, store, link, clock):
        primary = PrimarySync(store, link.primary, clock=clock, push_interval=60)
        primary.start()
        primary.stop()
        primary.start()
        try:
            assert primary.scheduler.running
        finally:
            primary.stop()

    def test_stop_leaves_shared_scheduler_running(self, store, link, clock):
        shared = ThreadedScheduler()
        try:
            primary = PrimarySync(store, link.primary, scheduler=shared, clock=clock, push_interval=60)
            primary.start()
            primary.stop()
            assert shared.running
        finally:
            shared.shutdown(wait=True)
