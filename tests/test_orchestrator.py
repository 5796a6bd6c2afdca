"""End-to-end tests for the transaction and cloud sync flows."""

import asyncio

import pytest
from datetime import date
from decimal import Decimal

from fincontrol.audit import AuditLogger
from fincontrol.ledger import TransactionLedger
from fincontrol.models.audit import AuditEventType
from fincontrol.models.transaction import DeletionMode, TransactionUpdate
from fincontrol.orchestrator import CloudSyncFlow, TransactionFlow, create_app_components
from fincontrol.services.notifications import LatestNotificationSink, NotificationSeverity
from fincontrol.services.storage import AuditStorageInterface, InMemoryRecordStore
from fincontrol.sync import SyncEngine
from fincontrol.validation import IntentRejectedError


class RecordingAuditStorage(AuditStorageInterface):
    def __init__(self):
        self.events = []

    async def append_event(self, event):
        self.events.append(event)
        return True

    async def get_events_by_correlation_id(self, correlation_id):
        return [e for e in self.events if e.correlation_id == correlation_id]

    async def get_recent_events(self, limit=100):
        return list(reversed(self.events))[:limit]


def build(store=None):
    notifier = LatestNotificationSink()
    audit_storage = RecordingAuditStorage()
    audit_logger = AuditLogger(audit_storage)
    engine = SyncEngine(
        TransactionLedger(),
        store=store,
        notifier=notifier,
        audit_logger=audit_logger,
    )
    flow = TransactionFlow(engine, audit_logger=audit_logger, notifier=notifier)
    return flow, engine, notifier, audit_storage


SALARY_FORM = {
    "kind": "income",
    "amount": "1000",
    "description": "Salary",
    "category": "salary",
    "transaction_date": "2024-01-05",
    "is_recurring": True,
}

TV_FORM = {
    "kind": "expense",
    "amount": "1200",
    "description": "Television",
    "category": "home",
    "transaction_date": "2024-03-15",
    "payment_method": "credit_card",
    "installments": 3,
}

COFFEE_FORM = {
    "kind": "expense",
    "amount": "30",
    "description": "Coffee",
    "category": "food",
    "transaction_date": "2024-02-03",
}


class TestTransactionFlow:

    def test_recurring_income_form(self):
        flow, engine, notifier, audit = build()
        records = asyncio.run(flow.submit(SALARY_FORM))

        assert len(records) == 12
        assert len(flow.records) == 12
        assert notifier.current.message == "Recurring income projected for 12 months"
        assert audit.events[-1].event_type == AuditEventType.SERIES_PROJECTED

    def test_installment_form(self):
        flow, engine, notifier, audit = build()
        records = asyncio.run(flow.submit(TV_FORM))

        assert [r.amount for r in records] == [Decimal("400")] * 3
        assert notifier.current.message == (
            "Purchase registered in 3 installment(s), first payment on 2024-04-10"
        )

    def test_single_form(self):
        flow, engine, notifier, audit = build()
        records = asyncio.run(flow.submit(COFFEE_FORM))

        assert len(records) == 1
        assert records[0].series_recurring_id is None
        assert records[0].installment_info is None
        assert notifier.current.message == "Transaction saved"
        assert audit.events[-1].event_type == AuditEventType.TRANSACTION_CREATED

    def test_rejected_form_creates_nothing(self):
        flow, engine, notifier, audit = build()
        form = dict(COFFEE_FORM, amount="0")

        with pytest.raises(IntentRejectedError):
            asyncio.run(flow.submit(form))

        assert flow.records == []
        assert audit.events[-1].event_type == AuditEventType.VALIDATION_FAILED
        assert audit.events[-1].details["issues"][0]["field"] == "amount"

    def test_edit_with_future_propagation(self):
        flow, engine, notifier, audit = build()

        async def scenario():
            records = await flow.submit(SALARY_FORM)
            return records, await flow.edit_transaction(
                records[6].id,
                TransactionUpdate(amount=Decimal("1300")),
                apply_to_future=True,
            )

        records, result = asyncio.run(scenario())
        assert len(result.updated_ids) == 6
        assert engine.ledger.get(records[5].id).amount == Decimal("1000")
        assert engine.ledger.get(records[11].id).amount == Decimal("1300")
        assert notifier.current.message == "Transaction and future ones updated"

    def test_schedule_future_change(self):
        flow, engine, notifier, audit = build()

        async def scenario():
            records = await flow.submit(SALARY_FORM)
            return await flow.schedule_future_change(
                records[0].series_recurring_id,
                date(2024, 9, 5),
                TransactionUpdate(amount=Decimal("1200")),
            )

        result = asyncio.run(scenario())
        assert len(result.updated_ids) == 4
        assert notifier.current.severity == NotificationSeverity.SUCCESS

    def test_delete_single(self):
        flow, engine, notifier, audit = build()

        async def scenario():
            records = await flow.submit(COFFEE_FORM)
            return await flow.delete_transaction(records[0].id)

        plan = asyncio.run(scenario())
        assert plan.mode == DeletionMode.SINGLE
        assert flow.records == []
        assert notifier.current.message == "Transaction deleted"

    def test_delete_future_members(self):
        flow, engine, notifier, audit = build()

        async def scenario():
            records = await flow.submit(SALARY_FORM)
            return await flow.delete_transaction(records[8].id, DeletionMode.FUTURE)

        plan = asyncio.run(scenario())
        assert len(plan.ids) == 4
        assert len(flow.records) == 8
        assert notifier.current.message == "Future transactions deleted"
        assert audit.events[-1].event_type == AuditEventType.TRANSACTIONS_DELETED


class TestCloudSyncFlow:

    def test_status_follows_link_state(self):
        store = InMemoryRecordStore()
        flow, engine, notifier, audit = build(store)
        cloud = CloudSyncFlow(engine)

        async def scenario():
            before = cloud.status()
            await cloud.sign_in("u1")
            await flow.submit(TV_FORM)
            await engine.wait_for_pending()
            linked = cloud.status()
            await cloud.sign_out()
            return before, linked, cloud.status()

        before, linked, after = asyncio.run(scenario())
        assert before["state"] == "anonymous"
        assert linked["state"] == "authenticated"
        assert linked["user_id"] == "u1"
        assert linked["pending_writes"] == 0
        assert len(store.documents("users/u1/transactions")) == 3
        assert after["record_count"] == 0
        assert after["user_id"] is None


class TestLatestNotificationSink:

    def test_history_is_bounded(self):
        notifier = LatestNotificationSink(history_size=3)
        for i in range(5):
            notifier.notify(f"message {i}")
        assert [n.message for n in notifier.history] == ["message 2", "message 3", "message 4"]
        assert notifier.current.message == "message 4"

    def test_dismiss_keeps_history(self):
        notifier = LatestNotificationSink()
        notifier.notify("Transaction saved", NotificationSeverity.SUCCESS)
        notifier.dismiss()
        assert notifier.current is None
        assert len(notifier.history) == 1


class TestCreateAppComponents:

    def test_local_only_components(self):
        notifier = LatestNotificationSink()
        transaction_flow, cloud_flow, client = create_app_components(
            use_storage=False, notifier=notifier,
        )
        assert client is None
        assert cloud_flow.status()["state"] == "anonymous"

        records = asyncio.run(transaction_flow.submit(COFFEE_FORM))
        assert transaction_flow.records == records
        assert notifier.current.message == "Transaction saved"


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
