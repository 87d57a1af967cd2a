from datetime import datetime, timezone

import pytest

from machine_reservation.types.machine import Machine

END = datetime(2026, 3, 1, 13, 0, tzinfo=timezone.utc)


class TestMachine:
    def test_defaults_are_free(self):
        machine = Machine(id=1, name="Machine 1")
        assert machine.in_use is False
        assert machine.current_user_id is None
        assert machine.end_time is None

    def test_occupy_and_release(self):
        machine = Machine(id=1, name="Machine 1")
        machine.occupy(7, END)
        assert machine.in_use is True
        assert machine.current_user_id == 7
        assert machine.end_time == END

        machine.release()
        assert machine.in_use is False
        assert machine.current_user_id is None
        assert machine.end_time is None

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"in_use": True},
            {"in_use": True, "current_user_id": 7},
            {"in_use": False, "current_user_id": 7, "end_time": END},
            {"in_use": False, "end_time": END},
        ],
    )
    def test_inconsistent_occupancy_rejected(self, kwargs):
        with pytest.raises(ValueError, match="in_use"):
            Machine(id=1, name="Machine 1", **kwargs)

    def test_dict_round_trip_preserves_occupancy(self):
        machine = Machine(id=3, name="Machine 3")
        machine.occupy(11, END)

        data = machine.to_dict()
        assert data["end_time"] == END.isoformat()
        assert Machine.from_dict(data) == machine

    def test_from_dict_free_machine(self):
        machine = Machine.from_dict({"id": "2", "name": "Machine 2"})
        assert machine.id == 2
        assert machine.in_use is False
        assert machine.end_time is None
