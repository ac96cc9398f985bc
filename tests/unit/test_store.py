# ============================================================================
# tests/unit/test_store.py
# ============================================================================
"""
Tests for the intake update store
"""

import sqlite3
from datetime import datetime, timedelta, timezone

import pytest

from intake_analysis.core.store import UNSPECIFIED, IntakeUpdateStore
from intake_analysis.utils.exceptions import StoreError


FIELDS = {
    "key_patient_reported_changes": "Grip worse.",
    "system_interpretation": "Needs review. Adjust plan.",
    "key_findings": "Grip decline.",
    "adl_effect_points": ["Difficulty gripping"],
    "intake_patient_points": ["Refill requested"],
    "generated_points": [{"text": "Grip worse", "color": "red"}],
    "med_refills_requested": "Yes",
    "new_appointments": "Ortho",
    "adl_changes": "grip ↓",
}


class TestUpsert:
    """Test update-or-insert on the identity triple"""

    def test_insert_and_read_back(self, store):
        record = store.upsert(("Lopez, M", "1980-01-01", None), FIELDS, {"status": "completed"})

        assert record.patient_name == "Lopez, M"
        assert record.claim_number is None
        assert record.adl_effect_points == ["Difficulty gripping"]
        assert record.generated_points == [{"text": "Grip worse", "color": "red"}]
        assert record.status == "completed"
        assert record.created_at == record.updated_at

    def test_resubmission_updates_in_place(self, store):
        identity = ("Lopez, M", "1980-01-01", None)
        first = store.upsert(identity, FIELDS, {"status": "completed"})
        second = store.upsert(identity, {**FIELDS, "key_findings": "Newer."}, {"status": "completed"})

        assert second.id == first.id
        assert second.key_findings == "Newer."
        assert second.created_at == first.created_at
        assert store.count() == 1

    def test_updated_at_strictly_increases(self, store):
        identity = ("Lopez, M", "1980-01-01", "WC-1")
        stamps = [store.upsert(identity, FIELDS, {"status": "completed"}).updated_at for _ in range(5)]

        parsed = [datetime.fromisoformat(s) for s in stamps]
        assert all(later > earlier for earlier, later in zip(parsed, parsed[1:]))

    def test_name_match_is_case_insensitive(self, store):
        store.upsert(("Lopez, M", "1980-01-01", None), FIELDS, {"status": "completed"})
        store.upsert(("LOPEZ, m", "1980-01-01", None), FIELDS, {"status": "completed"})
        assert store.count() == 1

    def test_accented_name_match_is_case_insensitive(self, store):
        first = store.upsert(("ÉLODIE MUÑOZ", "1980-01-01", None), FIELDS, {"status": "completed"})
        second = store.upsert(("élodie muñoz", "1980-01-01", None), FIELDS, {"status": "completed"})

        assert second.id == first.id
        assert store.count() == 1
        assert store.count("Élodie Muñoz") == 1
        assert store.find_latest("élodie MUÑOZ").id == first.id

    def test_timestamps_are_utc(self, store):
        record = store.upsert(("Lopez, M", "1980-01-01", None), FIELDS, {"status": "completed"})
        assert datetime.fromisoformat(record.created_at).utcoffset() == timedelta(0)

    def test_updated_at_after_legacy_naive_stamp(self, store):
        conn = sqlite3.connect(str(store.db_path))
        conn.execute(
            "INSERT INTO intake_updates (id, patient_name, patient_name_key, dob, claim_number, intake_data, created_at, updated_at) "
            "VALUES ('legacy', 'Lopez, M', 'lopez, m', '1980-01-01', NULL, '{}', '2999-01-01T00:00:00', '2999-01-01T00:00:00')"
        )
        conn.commit()
        conn.close()

        record = store.upsert(("Lopez, M", "1980-01-01", None), FIELDS, {"status": "completed"})
        assert record.id == "legacy"
        assert datetime.fromisoformat(record.updated_at) > datetime(2999, 1, 1, tzinfo=timezone.utc)

    def test_null_claim_is_its_own_identity(self, store):
        store.upsert(("Lopez, M", "1980-01-01", None), FIELDS, {"status": "completed"})
        store.upsert(("Lopez, M", "1980-01-01", "WC-1"), FIELDS, {"status": "completed"})
        assert store.count() == 2

    def test_stub_write_clears_derived_fields(self, store):
        identity = ("Lopez, M", "1980-01-01", None)
        store.upsert(identity, FIELDS, {"status": "completed"})
        stub = store.upsert(identity, {}, {"status": "failed", "error": "disk full"})

        assert stub.status == "failed"
        assert stub.key_findings == ""
        assert stub.adl_effect_points == []
        assert stub.med_refills_requested is None


class TestFindLatest:
    """Test the read path filters"""

    def test_null_claim_matches_is_null(self, store):
        store.upsert(("Lopez, M", "1980-01-01", None), FIELDS, {"status": "completed"})

        assert store.find_latest("Lopez, M", "1980-01-01", None) is not None
        assert store.find_latest("Lopez, M", "1980-01-01", "WC-1") is None

    def test_unspecified_drops_filters(self, store):
        store.upsert(("Lopez, M", "1980-01-01", "WC-1"), FIELDS, {"status": "completed"})

        assert store.find_latest("lopez, m") is not None
        assert store.find_latest("Lopez, M", UNSPECIFIED, "WC-1") is not None
        assert store.find_latest("Lopez, M", "1990-01-01") is None

    def test_most_recent_legacy_duplicate_wins(self, store):
        conn = sqlite3.connect(str(store.db_path))
        for record_id, created in (("old", "2024-01-01T00:00:00"), ("new", "2024-06-01T00:00:00")):
            conn.execute(
                "INSERT INTO intake_updates (id, patient_name, patient_name_key, dob, claim_number, intake_data, created_at, updated_at) "
                "VALUES (?, ?, ?, ?, NULL, '{}', ?, ?)",
                (record_id, "Lopez, M", "lopez, m", "1980-01-01", created, created),
            )
        conn.commit()
        conn.close()

        assert store.find_latest("Lopez, M", "1980-01-01", None).id == "new"

    def test_missing_patient(self, store):
        assert store.find_latest("Nobody") is None

    def test_to_dict_is_camel_case(self, store):
        record = store.upsert(("Lopez, M", "1980-01-01", None), FIELDS, {"status": "completed"})
        data = record.to_dict()

        assert data["patientName"] == "Lopez, M"
        assert data["keyFindings"] == "Grip decline."
        assert data["medRefillsRequested"] == "Yes"
        assert data["newAppointments"] == "Ortho"
        assert data["adlChanges"] == "grip ↓"
        assert data["intakeData"] == {"status": "completed"}
        assert set(data) >= {"id", "createdAt", "updatedAt", "generatedPoints"}


class TestAdlRestrictions:
    """Test the ADL inference table"""

    def test_save_and_update(self, store):
        identity = ("Lopez, M", "1980-01-01", None)
        assert store.get_adl_restrictions(identity) is None

        store.save_adl_restrictions(identity, "gripping", "lifting")
        store.save_adl_restrictions(identity, "gripping, dressing", "lifting, driving")

        saved = store.get_adl_restrictions(identity)
        assert saved["adlsAffected"] == "gripping, dressing"
        assert saved["workRestrictions"] == "lifting, driving"


class TestStoreErrors:
    """Test sqlite failures surface as StoreError"""

    def test_write_failure(self, store):
        conn = sqlite3.connect(str(store.db_path))
        conn.execute("DROP TABLE intake_updates")
        conn.commit()
        conn.close()

        with pytest.raises(StoreError):
            store.upsert(("Lopez, M", None, None), FIELDS, {"status": "completed"})

    def test_unwritable_location(self, tmp_path):
        blocker = tmp_path / "not_a_dir"
        blocker.write_text("")
        with pytest.raises(StoreError):
            IntakeUpdateStore(blocker / "db.sqlite")
