"""
Tests for the network simulator and the background workers.
"""
import asyncio
import random

import pytest

from schoolup_payments.core.service import create_payment_service
from schoolup_payments.domain.models import TransactionStatus
from schoolup_payments.integrations.momo_simulator import MoMoNetworkSimulator
from schoolup_payments.workers.background import BackgroundWorkers


class TestMoMoNetworkSimulator:
    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_simulated_success_settles(self, service, store) -> None:
        simulator = MoMoNetworkSimulator(
            confirm=service.confirm, latency_seconds=0, success_rate=1.0, rng=random.Random(1)
        )
        service.attach_confirmation_port(simulator)

        transaction = await service.initiate("std-1", "1000", "+260971000003", "MTN")
        assert transaction.status is TransactionStatus.PENDING
        assert simulator.pending == 1

        await simulator.drain()

        assert (await store.get_transaction(transaction.id)).status is TransactionStatus.SUCCESS
        assert len(await service.get_messages("parent-1")) == 1

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_simulated_decline(self, service, store) -> None:
        simulator = MoMoNetworkSimulator(confirm=service.confirm, latency_seconds=0, success_rate=0.0)
        service.attach_confirmation_port(simulator)

        transaction = await service.initiate("std-1", "1000", "+260971000003", "AIRTEL")
        await simulator.drain()

        stored = await store.get_transaction(transaction.id)
        assert stored.status is TransactionStatus.FAILED
        assert stored.failure_reason == "declined_by_network"

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_late_simulated_answer_is_duplicate(self, service, store) -> None:
        simulator = MoMoNetworkSimulator(confirm=service.confirm, latency_seconds=0.01)
        service.attach_confirmation_port(simulator)

        transaction = await service.initiate("std-1", "1000", "+260971000003", "MTN")
        await service.confirm(transaction.id, "FAILED", "1000")
        await simulator.drain()

        assert (await store.get_transaction(transaction.id)).status is TransactionStatus.FAILED
        assert await store.list_payments() == []

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_close_cancels_pending_answers(self, service, store) -> None:
        simulator = MoMoNetworkSimulator(confirm=service.confirm, latency_seconds=60)
        service.attach_confirmation_port(simulator)
        transaction = await service.initiate("std-1", "1000", "+260971000003", "MTN")

        await simulator.close()

        assert (await store.get_transaction(transaction.id)).status is TransactionStatus.PENDING

    @pytest.mark.unit
    def test_factory_attaches_simulator_when_enabled(self, test_settings, store) -> None:
        enabled = create_payment_service(
            settings=test_settings.model_copy(update={"simulator_enabled": True}), store=store
        )
        disabled = create_payment_service(settings=test_settings, store=store)

        assert isinstance(enabled.confirmation_port, MoMoNetworkSimulator)
        assert disabled.confirmation_port is None


class TestBackgroundWorkers:
    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_workers_deliver_and_expire(self, make_service, store, clock) -> None:
        service = make_service(sweep_interval_seconds=0.01, relay_poll_interval_seconds=0.01)
        stale = await service.initiate("std-1", "500", "+260971000003", "MTN")
        clock.advance(301)
        paid = await service.initiate("std-1", "1000", "+260971000003", "MTN")
        async with service.locks.hold(paid.id):
            await service.applier.settle(paid)

        workers = BackgroundWorkers(service)
        workers.start()
        assert workers.running
        for _ in range(100):
            expired = (await store.get_transaction(stale.id)).status is TransactionStatus.FAILED
            delivered = len(await service.get_messages("parent-1")) == 1
            if expired and delivered:
                break
            await asyncio.sleep(0.01)
        await workers.stop()

        assert not workers.running
        assert (await store.get_transaction(stale.id)).failure_reason == "confirmation_timeout"
        assert len(await service.get_messages("parent-1")) == 1
        assert await store.list_unpublished_events() == []
