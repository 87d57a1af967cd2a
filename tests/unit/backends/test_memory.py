from datetime import datetime, timedelta, timezone

import pytest

from machine_reservation.backends.memory import MemoryBackend

CREATED = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


class TestMemoryBackend:
    @pytest.fixture
    def backend(self):
        return MemoryBackend(namespace="test")

    @pytest.mark.asyncio
    async def test_init(self):
        backend = MemoryBackend(namespace="test_ns")
        assert backend.namespace == "test_ns"
        assert await backend.count_machines() == 0

    @pytest.mark.asyncio
    async def test_create_and_get_machine(self, backend):
        machine = await backend.create_machine("Machine 1")
        assert machine.id == 1
        assert machine.name == "Machine 1"
        assert machine.in_use is False

        stored = await backend.get_machine(1)
        assert stored == machine

    @pytest.mark.asyncio
    async def test_get_missing_machine(self, backend):
        assert await backend.get_machine(99) is None

    @pytest.mark.asyncio
    async def test_list_machines_ordered_by_id(self, backend):
        for i in range(1, 4):
            await backend.create_machine(f"Machine {i}")
        machines = await backend.list_machines()
        assert [m.id for m in machines] == [1, 2, 3]
        assert await backend.count_machines() == 3

    @pytest.mark.asyncio
    async def test_reads_return_copies(self, backend):
        """Mutating a returned machine must not change stored state."""
        await backend.create_machine("Machine 1")
        machine = await backend.get_machine(1)
        machine.occupy(7, CREATED)

        stored = await backend.get_machine(1)
        assert stored.in_use is False

    @pytest.mark.asyncio
    async def test_save_machine(self, backend):
        machine = await backend.create_machine("Machine 1")
        machine.occupy(7, CREATED)
        await backend.save_machine(machine)

        stored = await backend.get_machine(machine.id)
        assert stored.current_user_id == 7
        assert stored.end_time == CREATED

    @pytest.mark.asyncio
    async def test_queue_fifo_order(self, backend):
        await backend.add_queue_entry(1, 10, None, CREATED + timedelta(seconds=2))
        await backend.add_queue_entry(1, 11, 30, CREATED)
        await backend.add_queue_entry(1, 12, None, CREATED)
        await backend.add_queue_entry(2, 13, None, CREATED)

        queue = await backend.get_queue(1)
        assert [e.user_id for e in queue] == [11, 12, 10]
        assert [e.user_id for e in await backend.get_queue(2)] == [13]
        assert await backend.get_queue(3) == []

    @pytest.mark.asyncio
    async def test_delete_queue_entry(self, backend):
        first = await backend.add_queue_entry(1, 10, None, CREATED)
        second = await backend.add_queue_entry(1, 11, None, CREATED)

        assert await backend.delete_queue_entry(first.id) is True
        assert await backend.delete_queue_entry(first.id) is False
        assert [e.id for e in await backend.get_queue(1)] == [second.id]
        assert [e.id for e in await backend.list_queue_entries()] == [second.id]

    @pytest.mark.asyncio
    async def test_clear_keeps_id_sequences(self, backend):
        """Records created after clear get fresh ids."""
        await backend.create_machine("Machine 1")
        await backend.add_queue_entry(1, 10, None, CREATED)

        await backend.clear()
        assert await backend.count_machines() == 0
        assert await backend.list_queue_entries() == []
        assert await backend.get_queue(1) == []

        machine = await backend.create_machine("Machine 1")
        entry = await backend.add_queue_entry(machine.id, 10, None, CREATED)
        assert machine.id == 2
        assert entry.id == 2

    @pytest.mark.asyncio
    async def test_health_check(self, backend):
        await backend.create_machine("Machine 1")
        result = await backend.health_check()
        assert result.healthy is True
        assert result.backend_type == "memory"
        assert result.namespace == "test"
        assert result.metadata == {"machines": 1, "queue_entries": 0}

    @pytest.mark.asyncio
    async def test_context_manager(self):
        async with MemoryBackend() as backend:
            await backend.create_machine("Machine 1")
