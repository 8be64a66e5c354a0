"""
Tests for the in-memory record store and its transaction support
"""

import pytest
from datetime import datetime, timezone

from credit_engine.storage import InMemoryStorage, StorageRecord


record_data = {
    "id": "credit_001",
    "client_id": "client-1",
    "amount": "100.50",
    "created_at": datetime(2025, 1, 1, tzinfo=timezone.utc).isoformat(),
    "updated_at": datetime(2025, 1, 1, tzinfo=timezone.utc).isoformat()
}


class TestInMemoryStorage:
    """Test basic record operations"""

    def setup_method(self):
        self.storage = InMemoryStorage()

    def test_basic_operations(self):
        """Test save, load, find and delete"""
        self.storage.save("credits", "credit_001", record_data)

        assert self.storage.load("credits", "credit_001") == record_data
        assert self.storage.exists("credits", "credit_001")
        assert not self.storage.exists("credits", "missing")

        self.storage.save("credits", "credit_002", {"id": "credit_002", "client_id": "client-2"})
        assert len(self.storage.load_all("credits")) == 2
        assert [r["id"] for r in self.storage.find("credits", {"client_id": "client-2"})] == ["credit_002"]

        assert self.storage.delete("credits", "credit_001")
        assert not self.storage.delete("credits", "credit_001")
        assert self.storage.load("credits", "credit_001") is None

    def test_records_are_copies(self):
        """Test stored data cannot be mutated through returned dictionaries"""
        self.storage.save("credits", "credit_001", record_data)
        loaded = self.storage.load("credits", "credit_001")
        loaded["amount"] = "0"

        assert self.storage.load("credits", "credit_001")["amount"] == "100.50"


class TestAtomic:
    """Test atomic blocks"""

    def setup_method(self):
        self.storage = InMemoryStorage()
        self.storage.save("credits", "credit_001", record_data)

    def test_commit(self):
        """Test writes inside a successful block persist"""
        with self.storage.atomic():
            self.storage.save("payments", "payment_001", {"id": "payment_001"})

        assert self.storage.exists("payments", "payment_001")

    def test_rollback(self):
        """Test a failing block leaves no partial writes"""
        with pytest.raises(RuntimeError):
            with self.storage.atomic():
                self.storage.save("payments", "payment_001", {"id": "payment_001"})
                self.storage.delete("credits", "credit_001")
                raise RuntimeError("write failed")

        assert not self.storage.exists("payments", "payment_001")
        assert self.storage.exists("credits", "credit_001")


class TestStorageRecord:
    """Test record serialization"""

    def test_to_dict(self):
        """Test timestamps are serialized as ISO strings"""
        created = datetime(2025, 1, 1, 8, 30, tzinfo=timezone.utc)
        record = StorageRecord(id="r1", created_at=created, updated_at=created)

        assert record.to_dict() == {
            "id": "r1",
            "created_at": "2025-01-01T08:30:00+00:00",
            "updated_at": "2025-01-01T08:30:00+00:00"
        }
