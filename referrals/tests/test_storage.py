"""
Unit Tests for the Persistent Store

Tests cover:
1. Round-trips for both backends
2. Tolerance of missing and corrupted data
3. Transaction atomicity
"""

import pytest

from referrals.errors import DuplicateError
from referrals.models import SubmitApplicationRequest
from referrals.service import ReferralProgram
from referrals.storage import InMemoryStorage, JsonFileStorage, APPLICATIONS_KEY, USERS_KEY


SAMPLE = [
    {"id": "a1", "name": "Jane", "balance": 150, "referrals": [{"amount": 300}]},
    {"id": "a2", "name": "Bob", "balance": -5, "referrals": []},
]


@pytest.fixture(params=["memory", "json"])
def storage(request, tmp_path):
    if request.param == "memory":
        return InMemoryStorage()
    return JsonFileStorage(tmp_path / "store")


class TestRoundTrip:
    """Tests for write-then-read behaviour."""

    def test_collection_round_trip(self, storage):
        storage.write(USERS_KEY, SAMPLE)
        assert storage.read(USERS_KEY) == SAMPLE

    def test_singleton_round_trip(self, storage):
        storage.write("settings", {"min_withdrawal": 100})
        assert storage.read("settings") == {"min_withdrawal": 100}

    def test_read_returns_copies(self, storage):
        storage.write(USERS_KEY, SAMPLE)
        storage.read(USERS_KEY)[0]["balance"] = 0
        assert storage.read(USERS_KEY)[0]["balance"] == 150

    def test_missing_key_returns_default(self, storage):
        assert storage.read("nothing") is None
        assert storage.read("nothing", []) == []

    def test_json_storage_survives_reopen(self, tmp_path):
        JsonFileStorage(tmp_path).write(USERS_KEY, SAMPLE)
        assert JsonFileStorage(tmp_path).read(USERS_KEY) == SAMPLE


class TestCorruption:
    """Tests for unreadable stored data."""

    def test_corrupted_memory_value_returns_default(self):
        storage = InMemoryStorage()
        storage._write_raw(USERS_KEY, "{not json")
        assert storage.read(USERS_KEY, []) == []

    def test_corrupted_file_returns_default(self, tmp_path):
        storage = JsonFileStorage(tmp_path)
        (tmp_path / f"{USERS_KEY}.json").write_text("[{]", encoding="utf-8")
        assert storage.read(USERS_KEY, []) == []

    def test_program_tolerates_corrupted_collections(self):
        storage = InMemoryStorage()
        storage._write_raw(APPLICATIONS_KEY, "garbage")
        storage.write(USERS_KEY, {"not": "a list"})

        program = ReferralProgram(storage=storage)

        assert program.list_applications() == []
        assert program.list_users() == []

    def test_malformed_records_are_skipped(self):
        program = ReferralProgram()
        program.submit_application(SubmitApplicationRequest(
            name="Jane", email="jane@example.com", phone="0700000000", payment_proof="blob",
        ))
        users = program.storage.read(USERS_KEY)
        program.storage.write(USERS_KEY, users + [{"email": "broken"}])

        assert [u.email for u in program.list_users()] == ["jane@example.com"]


class TestTransactions:
    """Tests for the scoped read-modify-write cycle."""

    def test_transaction_reads_own_writes(self, storage):
        with storage.transaction() as tx:
            tx.write(USERS_KEY, SAMPLE)
            assert tx.read(USERS_KEY) == SAMPLE
            assert storage.read(USERS_KEY) is None
        assert storage.read(USERS_KEY) == SAMPLE

    def test_failed_transaction_writes_nothing(self, storage):
        storage.write(USERS_KEY, SAMPLE)

        with pytest.raises(RuntimeError):
            with storage.transaction() as tx:
                tx.write(USERS_KEY, [])
                tx.write("settings", {"min_withdrawal": 1})
                raise RuntimeError("boom")

        assert storage.read(USERS_KEY) == SAMPLE
        assert storage.read("settings") is None

    def test_failed_operation_leaves_state_unchanged(self):
        program = ReferralProgram()
        request = SubmitApplicationRequest(
            name="Jane", email="jane@example.com", phone="0700000000", payment_proof="blob",
        )
        program.submit_application(request)
        snapshot = {key: program.storage.read(key) for key in (APPLICATIONS_KEY, USERS_KEY)}

        with pytest.raises(DuplicateError):
            program.submit_application(request)

        assert {key: program.storage.read(key) for key in snapshot} == snapshot


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
