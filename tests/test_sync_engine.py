"""
Tests for the sync reconciliation engine.

Every scenario runs on the in-memory record store, which delivers snapshots
asynchronously like a real push feed.
"""

import asyncio

import pytest
from datetime import date
from decimal import Decimal
from uuid import uuid4

from fincontrol.ledger import TransactionLedger
from fincontrol.models.transaction import (
    DeletionMode,
    ExpenseType,
    InstallmentPurchaseIntent,
    RecurringIncomeIntent,
    Transaction,
    TransactionType,
    TransactionUpdate,
)
from fincontrol.series import (
    TransactionNotFoundError,
    project_installment_plan,
    project_recurring_income,
)
from fincontrol.services.notifications import LatestNotificationSink, NotificationSeverity
from fincontrol.services.storage import InMemoryRecordStore, StorageError
from fincontrol.sync import (
    REMOTE_FAILURE_MESSAGE,
    CloudLinkError,
    CloudLinkState,
    SyncEngine,
    collection_path_for,
    from_remote_document,
    to_remote_document,
)


USER = "u1"
PATH = collection_path_for(USER)


def coffee(description="Coffee"):
    return Transaction(
        kind=TransactionType.EXPENSE,
        amount=Decimal("30"),
        description=description,
        category="food",
        impact_date=date(2024, 2, 3),
    )


def salary_series():
    return project_recurring_income(RecurringIncomeIntent(
        amount=Decimal("1000"),
        description="Salary",
        category="salary",
        start_year=2024,
        start_month=1,
        start_day=5,
    ))


def make_engine(store=None):
    notifier = LatestNotificationSink()
    engine = SyncEngine(TransactionLedger(), store=store, notifier=notifier)
    return engine, notifier


async def settle(engine):
    """Let background writes finish and their snapshots arrive."""
    for _ in range(3):
        await asyncio.sleep(0)
    await engine.wait_for_pending()
    for _ in range(3):
        await asyncio.sleep(0)


class TestCodec:

    def test_document_has_no_id_or_nulls(self):
        record = coffee()
        document = to_remote_document(record)
        assert "id" not in document
        assert "series_recurring_id" not in document
        assert document["amount"] == "30"
        assert document["impact_date"] == "2024-02-03"

    def test_decode_round_trip_with_id(self):
        record = project_installment_plan(InstallmentPurchaseIntent(
            total_amount=Decimal("1200"),
            installments=3,
            description="TV",
            category="home",
            purchase_date=date(2024, 3, 15),
        ))[1]
        decoded = from_remote_document({**to_remote_document(record), "id": str(record.id)})
        assert decoded == record

    def test_malformed_document_is_skipped(self):
        assert from_remote_document({"id": "nope", "kind": "gift"}) is None


class TestLocalOnly:
    """Without a link the engine is a plain local ledger."""

    def test_mutations_apply_without_store(self):
        engine, _ = make_engine()
        record = engine.add_transaction(coffee())
        engine.update_transaction(record.id, TransactionUpdate(amount=Decimal("45")))
        assert engine.ledger.get(record.id).amount == Decimal("45")
        engine.remove_transaction(record.id)
        assert len(engine.ledger) == 0
        assert engine.state == CloudLinkState.ANONYMOUS
        assert engine.pending_count == 0

    def test_anonymous_with_store_does_not_write(self):
        async def scenario():
            store = InMemoryRecordStore()
            engine, _ = make_engine(store)
            engine.add_transaction(coffee())
            await settle(engine)
            assert store.commit_count == 0

        asyncio.run(scenario())

    def test_remove_unknown_raises(self):
        engine, _ = make_engine()
        with pytest.raises(TransactionNotFoundError):
            engine.remove_transaction(uuid4())

    def test_sign_in_without_store(self):
        async def scenario():
            engine, _ = make_engine()
            with pytest.raises(CloudLinkError):
                await engine.sign_in(USER)
            assert engine.state == CloudLinkState.ANONYMOUS

        asyncio.run(scenario())

    def test_series_delete_notifies_locally(self):
        engine, notifier = make_engine()
        records = engine.add_transactions(salary_series())
        engine.delete_transaction(records[0].id, DeletionMode.ALL)
        assert len(engine.ledger) == 0
        assert notifier.current.message == "Series deleted"


class TestMirroring:

    def test_single_add_is_one_put(self):
        async def scenario():
            store = InMemoryRecordStore()
            engine, _ = make_engine(store)
            await engine.sign_in(USER)
            await settle(engine)

            record = engine.add_transaction(coffee())
            assert record.id in engine.ledger  # applied before any await
            await settle(engine)
            assert list(store.documents(PATH)) == [str(record.id)]

        asyncio.run(scenario())

    def test_future_edit_on_non_series_record_is_one_write(self):
        async def scenario():
            store = InMemoryRecordStore()
            engine, _ = make_engine(store)
            await engine.sign_in(USER)
            await settle(engine)

            engine.add_transactions(salary_series())
            lone = engine.add_transaction(coffee())
            await settle(engine)
            commits = store.commit_count

            result = engine.update_transaction(
                lone.id, TransactionUpdate(amount=Decimal("45")), apply_to_future=True
            )
            await settle(engine)

            assert result.updated_ids == [lone.id]
            assert store.commit_count == commits + 1
            assert store.documents(PATH)[str(lone.id)]["amount"] == "45"
            assert all(
                doc["amount"] == "1000"
                for doc_id, doc in store.documents(PATH).items()
                if doc_id != str(lone.id)
            )

        asyncio.run(scenario())

    def test_bulk_add_is_one_batch(self):
        async def scenario():
            store = InMemoryRecordStore()
            engine, _ = make_engine(store)
            await engine.sign_in(USER)
            await settle(engine)

            engine.add_transactions(salary_series())
            await settle(engine)
            assert store.commit_count == 1
            assert len(store.documents(PATH)) == 12
            assert len(engine.ledger) == 12

        asyncio.run(scenario())

    def test_single_update_and_future_propagation(self):
        async def scenario():
            store = InMemoryRecordStore()
            engine, _ = make_engine(store)
            await engine.sign_in(USER)
            records = engine.add_transactions(salary_series())
            await settle(engine)

            engine.update_transaction(records[0].id, TransactionUpdate(amount=Decimal("5")))
            await settle(engine)
            assert Decimal(store.documents(PATH)[str(records[0].id)]["amount"]) == 5

            commits = store.commit_count
            engine.update_transaction(
                records[9].id,
                TransactionUpdate(amount=Decimal("2000")),
                apply_to_future=True,
            )
            await settle(engine)
            assert store.commit_count == commits + 1
            docs = store.documents(PATH)
            assert [Decimal(docs[str(r.id)]["amount"]) for r in records[8:]] == [
                Decimal("1000"), Decimal("2000"), Decimal("2000"), Decimal("2000"),
            ]

        asyncio.run(scenario())

    def test_cleared_field_overwrites_remote_document(self):
        async def scenario():
            store = InMemoryRecordStore()
            engine, _ = make_engine(store)
            await engine.sign_in(USER)
            record = engine.add_transaction(
                coffee().model_copy(update={"expense_type": ExpenseType.FIXED})
            )
            await settle(engine)

            engine.update_transaction(record.id, TransactionUpdate(expense_type=None))
            await settle(engine)
            assert "expense_type" not in store.documents(PATH)[str(record.id)]
            assert engine.ledger.get(record.id).expense_type is None

        asyncio.run(scenario())

    def test_scheduled_change_is_one_batch(self):
        async def scenario():
            store = InMemoryRecordStore()
            engine, _ = make_engine(store)
            await engine.sign_in(USER)
            records = engine.add_transactions(salary_series())
            await settle(engine)

            commits = store.commit_count
            result = engine.update_recurring_future(
                records[0].series_recurring_id,
                date(2024, 7, 5),
                TransactionUpdate(amount=Decimal("1200")),
            )
            await settle(engine)
            assert len(result.updated_ids) == 6
            assert store.commit_count == commits + 1

        asyncio.run(scenario())

    def test_future_deletion_is_one_batch_and_notifies(self):
        async def scenario():
            store = InMemoryRecordStore()
            engine, notifier = make_engine(store)
            await engine.sign_in(USER)
            records = engine.add_transactions(salary_series())
            await settle(engine)

            commits = store.commit_count
            plan = engine.delete_transaction(records[5].id, DeletionMode.FUTURE)
            assert len(engine.ledger) == 5
            await settle(engine)
            assert len(plan.ids) == 7
            assert store.commit_count == commits + 1
            assert len(store.documents(PATH)) == 5
            assert notifier.current.message == "Future transactions deleted"
            assert notifier.current.severity == NotificationSeverity.SUCCESS

        asyncio.run(scenario())


class TestRemoteFailure:

    def test_failure_keeps_local_state_and_warns(self):
        async def scenario():
            store = InMemoryRecordStore()
            engine, notifier = make_engine(store)
            await engine.sign_in(USER)
            await settle(engine)

            store.fail_with = StorageError("offline")
            record = engine.add_transaction(coffee())
            await settle(engine)

            assert record.id in engine.ledger
            assert store.documents(PATH) == {}
            assert notifier.current.message == REMOTE_FAILURE_MESSAGE
            assert notifier.current.severity == NotificationSeverity.WARNING

        asyncio.run(scenario())

    def test_failed_deletion_is_not_rolled_back(self):
        async def scenario():
            store = InMemoryRecordStore()
            engine, notifier = make_engine(store)
            await engine.sign_in(USER)
            records = engine.add_transactions(salary_series())
            await settle(engine)

            store.fail_with = StorageError("offline")
            engine.delete_transaction(records[0].id, DeletionMode.ALL)
            await settle(engine)
            assert len(engine.ledger) == 0
            assert len(store.documents(PATH)) == 12
            assert notifier.current.message == REMOTE_FAILURE_MESSAGE

        asyncio.run(scenario())

    def test_update_of_record_missing_remotely_warns(self):
        async def scenario():
            store = InMemoryRecordStore()
            engine, notifier = make_engine(store)
            await engine.sign_in(USER)
            await settle(engine)

            store.fail_with = StorageError("offline")
            record = engine.add_transaction(coffee())
            await settle(engine)
            store.fail_with = None
            notifier.dismiss()

            engine.update_transaction(record.id, TransactionUpdate(amount=Decimal("1")))
            await settle(engine)
            assert engine.ledger.get(record.id).amount == Decimal("1")
            assert notifier.current.message == REMOTE_FAILURE_MESSAGE

        asyncio.run(scenario())


class TestSnapshots:

    def test_first_snapshot_replaces_ledger(self):
        async def scenario():
            store = InMemoryRecordStore()
            remote = coffee("Remote")
            store.server_put(PATH, str(remote.id), to_remote_document(remote))

            engine, _ = make_engine(store)
            engine.add_transaction(coffee("Local only"))
            await engine.sign_in(USER)
            await settle(engine)

            assert engine.state == CloudLinkState.AUTHENTICATED
            assert [r.description for r in engine.ledger] == ["Remote"]

        asyncio.run(scenario())

    def test_other_device_writes_arrive(self):
        async def scenario():
            store = InMemoryRecordStore()
            engine, _ = make_engine(store)
            await engine.sign_in(USER)
            await settle(engine)

            remote = coffee("From phone")
            store.server_put(PATH, str(remote.id), to_remote_document(remote))
            await settle(engine)
            assert engine.ledger.get(remote.id) == remote

            store.server_delete(PATH, str(remote.id))
            await settle(engine)
            assert len(engine.ledger) == 0

        asyncio.run(scenario())

    def test_malformed_remote_documents_are_skipped(self):
        async def scenario():
            store = InMemoryRecordStore()
            good = coffee()
            store.server_put(PATH, str(good.id), to_remote_document(good))
            store.server_put(PATH, "broken", {"kind": "gift"})

            engine, _ = make_engine(store)
            await engine.sign_in(USER)
            await settle(engine)
            assert engine.ledger.records == [good]

        asyncio.run(scenario())

    def test_snapshot_race_drops_optimistic_record_until_its_echo(self):
        """
        A snapshot taken before an outbound write lands replaces the ledger
        and drops the optimistic record; the write's own echo restores it.
        """
        async def scenario():
            store = InMemoryRecordStore(write_delay=0.05)
            engine, _ = make_engine(store)
            await engine.sign_in(USER)
            await settle(engine)

            local = engine.add_transaction(coffee("Optimistic"))
            assert local.id in engine.ledger

            other = coffee("Other device")
            store.server_put(PATH, str(other.id), to_remote_document(other))
            await asyncio.sleep(0)
            await asyncio.sleep(0)
            assert local.id not in engine.ledger
            assert other.id in engine.ledger

            await settle(engine)
            assert local.id in engine.ledger
            assert other.id in engine.ledger

        asyncio.run(scenario())

    def test_stale_subscription_snapshot_is_ignored(self):
        async def scenario():
            store = InMemoryRecordStore()
            remote = coffee("Remote")
            store.server_put(PATH, str(remote.id), to_remote_document(remote))

            engine, _ = make_engine(store)
            await engine.sign_in(USER)
            # The initial snapshot is queued but not yet delivered.
            await engine.sign_out()
            local = engine.add_transaction(coffee("Local"))
            await settle(engine)

            assert engine.ledger.records == [local]

        asyncio.run(scenario())


class TestCloudLink:

    def test_sign_out_clears_and_unsubscribes(self):
        async def scenario():
            store = InMemoryRecordStore()
            engine, _ = make_engine(store)
            await engine.sign_in(USER)
            engine.add_transactions(salary_series())
            await settle(engine)

            await engine.sign_out()
            assert engine.state == CloudLinkState.ANONYMOUS
            assert engine.user_id is None
            assert len(engine.ledger) == 0
            assert store.subscriber_count(PATH) == 0
            assert len(store.documents(PATH)) == 12

        asyncio.run(scenario())

    def test_switching_user_uses_new_collection(self):
        async def scenario():
            store = InMemoryRecordStore()
            engine, _ = make_engine(store)
            await engine.sign_in(USER)
            await settle(engine)
            await engine.sign_in("u2")
            engine.add_transaction(coffee())
            await settle(engine)

            assert store.subscriber_count(PATH) == 0
            assert len(store.documents(collection_path_for("u2"))) == 1
            assert store.documents(PATH) == {}

        asyncio.run(scenario())

    def test_push_local_to_cloud(self):
        async def scenario():
            store = InMemoryRecordStore()
            engine, notifier = make_engine(store)
            await engine.sign_in(USER)
            await settle(engine)

            store.fail_with = StorageError("offline")
            engine.add_transactions(salary_series())
            await settle(engine)
            assert store.documents(PATH) == {}

            store.fail_with = None
            assert await engine.push_local_to_cloud() is True
            assert len(store.documents(PATH)) == 12
            assert notifier.current.message == "Cloud sync completed"
            assert engine.is_syncing is False

        asyncio.run(scenario())

    def test_push_failure_reports_error(self):
        async def scenario():
            store = InMemoryRecordStore()
            engine, notifier = make_engine(store)
            await engine.sign_in(USER)
            await settle(engine)
            store.fail_with = StorageError("offline")
            engine.add_transaction(coffee())
            await settle(engine)

            assert await engine.push_local_to_cloud() is False
            assert notifier.current.severity == NotificationSeverity.ERROR
            assert engine.is_syncing is False

        asyncio.run(scenario())

    def test_push_requires_link(self):
        async def scenario():
            engine, notifier = make_engine(InMemoryRecordStore())
            engine.add_transaction(coffee())
            assert await engine.push_local_to_cloud() is False
            assert notifier.current.severity == NotificationSeverity.INFO

        asyncio.run(scenario())

    def test_sign_out_during_upload(self):
        """
        Signing out while a batch upload is in flight clears the ledger at
        once; the upload is neither awaited nor cancelled and still lands.
        """
        async def scenario():
            store = InMemoryRecordStore()
            engine, _ = make_engine(store)
            await engine.sign_in(USER)
            await settle(engine)
            store.fail_with = StorageError("offline")
            engine.add_transactions(salary_series())
            await settle(engine)

            store.fail_with = None
            store.write_delay = 0.05
            upload = asyncio.ensure_future(engine.push_local_to_cloud())
            await asyncio.sleep(0)
            assert engine.is_syncing is True

            await engine.sign_out()
            assert len(engine.ledger) == 0
            assert engine.state == CloudLinkState.ANONYMOUS
            assert not upload.done()

            assert await upload is True
            await settle(engine)
            assert len(store.documents(PATH)) == 12
            assert len(engine.ledger) == 0

        asyncio.run(scenario())

    def test_reset_local_keeps_remote(self):
        async def scenario():
            store = InMemoryRecordStore()
            engine, _ = make_engine(store)
            await engine.sign_in(USER)
            engine.add_transaction(coffee())
            await settle(engine)

            engine.reset_local()
            assert len(engine.ledger) == 0
            assert len(store.documents(PATH)) == 1

        asyncio.run(scenario())


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
