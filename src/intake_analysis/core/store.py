# ============================================================================
# src/intake_analysis/core/store.py
# ============================================================================
"""
Intake Update Store

Persists patient intake update records to SQLite. Raw sqlite3, JSON for the
list and audit columns.

Records are keyed by the identity triple (patient name, DOB, claim number):
- patient name compares case-insensitively, via a casefolded key column
  (SQLite's NOCASE only folds ASCII)
- a None DOB / claim number is a value of its own and matches IS NULL
- UNSPECIFIED drops the filter entirely (read path only)

upsert() is a read-then-write without locking. Two simultaneous submissions
for the same patient can lose an update (last write wins).
"""

import json
import logging
import sqlite3
import uuid
from contextlib import closing
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from ..config.base_config import base_settings
from ..utils.exceptions import StoreError
from ..utils.logging import log_performance

logger = logging.getLogger(__name__)


class _Unspecified:
    def __repr__(self):
        return "UNSPECIFIED"


# Sentinel: "do not filter on this field"
UNSPECIFIED = _Unspecified()

_COLUMNS = (
    "id", "patient_name", "patient_name_key", "dob", "claim_number",
    "key_patient_reported_changes", "system_interpretation", "key_findings",
    "adl_effect_points", "intake_patient_points", "generated_points",
    "med_refills_requested", "new_appointments", "adl_changes",
    "intake_data", "created_at", "updated_at",
)


@dataclass
class IntakeUpdateRecord:
    """One persisted intake update."""
    id: str
    patient_name: str
    dob: Optional[str]
    claim_number: Optional[str]
    key_patient_reported_changes: str = ""
    system_interpretation: str = ""
    key_findings: str = ""
    adl_effect_points: List[str] = field(default_factory=list)
    intake_patient_points: List[str] = field(default_factory=list)
    generated_points: List[Dict[str, Any]] = field(default_factory=list)
    med_refills_requested: Optional[str] = None
    new_appointments: Optional[str] = None
    adl_changes: Optional[str] = None
    intake_data: Dict[str, Any] = field(default_factory=dict)
    created_at: str = ""
    updated_at: str = ""

    @property
    def status(self) -> Optional[str]:
        return self.intake_data.get("status")

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "IntakeUpdateRecord":
        return cls(
            id=row["id"],
            patient_name=row["patient_name"],
            dob=row["dob"],
            claim_number=row["claim_number"],
            key_patient_reported_changes=row["key_patient_reported_changes"] or "",
            system_interpretation=row["system_interpretation"] or "",
            key_findings=row["key_findings"] or "",
            adl_effect_points=json.loads(row["adl_effect_points"] or "[]"),
            intake_patient_points=json.loads(row["intake_patient_points"] or "[]"),
            generated_points=json.loads(row["generated_points"] or "[]"),
            med_refills_requested=row["med_refills_requested"],
            new_appointments=row["new_appointments"],
            adl_changes=row["adl_changes"],
            intake_data=json.loads(row["intake_data"] or "{}"),
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    def to_dict(self) -> Dict[str, Any]:
        """camelCase shape returned by the API."""
        return {
            "id": self.id,
            "patientName": self.patient_name,
            "dob": self.dob,
            "claimNumber": self.claim_number,
            "keyPatientReportedChanges": self.key_patient_reported_changes,
            "systemInterpretation": self.system_interpretation,
            "keyFindings": self.key_findings,
            "adlEffectPoints": self.adl_effect_points,
            "intakePatientPoints": self.intake_patient_points,
            "generatedPoints": self.generated_points,
            "medRefillsRequested": self.med_refills_requested,
            "newAppointments": self.new_appointments,
            "adlChanges": self.adl_changes,
            "intakeData": self.intake_data,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }


def name_key(patient_name: str) -> str:
    """Case-insensitive lookup key for a patient name (Unicode-aware)."""
    return patient_name.casefold()


def _identity_filter(
    patient_name: str,
    dob: Any = UNSPECIFIED,
    claim_number: Any = UNSPECIFIED,
) -> Tuple[str, list]:
    clauses = ["patient_name_key = ?"]
    params: list = [name_key(patient_name)]

    for column, value in (("dob", dob), ("claim_number", claim_number)):
        if value is UNSPECIFIED:
            continue
        if value is None:
            clauses.append(f"{column} IS NULL")
        else:
            clauses.append(f"{column} = ?")
            params.append(value)

    return " AND ".join(clauses), params


def _next_timestamp(previous: Optional[str]) -> str:
    """Now (UTC), but strictly after `previous`."""
    now = datetime.now(timezone.utc)
    if previous:
        try:
            floor = datetime.fromisoformat(previous) + timedelta(microseconds=1)
            if floor.tzinfo is None:
                floor = floor.replace(tzinfo=timezone.utc)
            if now < floor:
                now = floor
        except ValueError:
            pass
    return now.isoformat(timespec="microseconds")


class IntakeUpdateStore:
    """
    SQLite-backed store for patient intake updates and ADL inference output.
    """

    def __init__(self, db_path: Optional[Path] = None):
        self.db_path = Path(db_path or base_settings.INTAKE_DB_PATH)
        self._init_database()

    # ------------------------------------------------------------------
    # Schema
    # ------------------------------------------------------------------
    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self.db_path))
        conn.row_factory = sqlite3.Row
        return conn

    def _init_database(self):
        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            with closing(self._connect()) as conn, conn:
                conn.execute("""
                    CREATE TABLE IF NOT EXISTS intake_updates (
                        id                              TEXT PRIMARY KEY,
                        patient_name                    TEXT NOT NULL,
                        patient_name_key                TEXT NOT NULL,
                        dob                             TEXT,
                        claim_number                    TEXT,
                        key_patient_reported_changes    TEXT,
                        system_interpretation           TEXT,
                        key_findings                    TEXT,
                        adl_effect_points               TEXT,
                        intake_patient_points           TEXT,
                        generated_points                TEXT,
                        med_refills_requested           TEXT,
                        new_appointments                TEXT,
                        adl_changes                     TEXT,
                        intake_data                     TEXT NOT NULL,
                        created_at                      TEXT NOT NULL,
                        updated_at                      TEXT NOT NULL
                    )
                """)
                conn.execute("""
                    CREATE INDEX IF NOT EXISTS idx_intake_updates_identity
                    ON intake_updates (patient_name_key, dob, claim_number)
                """)
                conn.execute("""
                    CREATE TABLE IF NOT EXISTS adl_restrictions (
                        id                  TEXT PRIMARY KEY,
                        patient_name        TEXT NOT NULL,
                        patient_name_key    TEXT NOT NULL,
                        dob                 TEXT,
                        claim_number        TEXT,
                        adls_affected       TEXT,
                        work_restrictions   TEXT,
                        created_at          TEXT NOT NULL,
                        updated_at          TEXT NOT NULL
                    )
                """)
        except (sqlite3.Error, OSError) as e:
            raise StoreError(f"Could not initialize intake store at {self.db_path}: {e}") from e

        logger.info(f"Intake update store initialized: {self.db_path}")

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------
    def find_latest(
        self,
        patient_name: str,
        dob: Any = UNSPECIFIED,
        claim_number: Any = UNSPECIFIED,
    ) -> Optional[IntakeUpdateRecord]:
        """Most recently created record matching the identity filter."""
        where, params = _identity_filter(patient_name, dob, claim_number)
        try:
            with closing(self._connect()) as conn:
                row = conn.execute(
                    f"SELECT * FROM intake_updates WHERE {where} "
                    f"ORDER BY created_at DESC LIMIT 1",
                    params,
                ).fetchone()
        except sqlite3.Error as e:
            raise StoreError(f"Intake update lookup failed: {e}") from e
        return IntakeUpdateRecord.from_row(row) if row else None

    def get(self, record_id: str) -> Optional[IntakeUpdateRecord]:
        try:
            with closing(self._connect()) as conn:
                row = conn.execute(
                    "SELECT * FROM intake_updates WHERE id = ?", (record_id,)
                ).fetchone()
        except sqlite3.Error as e:
            raise StoreError(f"Intake update read failed: {e}") from e
        return IntakeUpdateRecord.from_row(row) if row else None

    def count(self, patient_name: Optional[str] = None) -> int:
        try:
            with closing(self._connect()) as conn:
                if patient_name:
                    row = conn.execute(
                        "SELECT COUNT(*) FROM intake_updates WHERE patient_name_key = ?",
                        (name_key(patient_name),),
                    ).fetchone()
                else:
                    row = conn.execute("SELECT COUNT(*) FROM intake_updates").fetchone()
        except sqlite3.Error as e:
            raise StoreError(f"Intake update count failed: {e}") from e
        return row[0]

    # ------------------------------------------------------------------
    # Write
    # ------------------------------------------------------------------
    @log_performance(logger, "Intake update upsert")
    def upsert(
        self,
        identity: Tuple[str, Optional[str], Optional[str]],
        fields: Dict[str, Any],
        intake_data: Dict[str, Any],
    ) -> IntakeUpdateRecord:
        """
        Update the record for this identity, or insert one.

        Args:
            identity: (patient_name, dob, claim_number), already normalized
            fields: derived columns (snake_case keys of IntakeUpdateRecord)
            intake_data: audit echo of the submission, including its status

        Returns:
            The stored record
        """
        patient_name, dob, claim_number = identity
        values = {
            "key_patient_reported_changes": fields.get("key_patient_reported_changes", ""),
            "system_interpretation": fields.get("system_interpretation", ""),
            "key_findings": fields.get("key_findings", ""),
            "adl_effect_points": json.dumps(fields.get("adl_effect_points") or []),
            "intake_patient_points": json.dumps(fields.get("intake_patient_points") or []),
            "generated_points": json.dumps(fields.get("generated_points") or []),
            "med_refills_requested": fields.get("med_refills_requested"),
            "new_appointments": fields.get("new_appointments"),
            "adl_changes": fields.get("adl_changes"),
            "intake_data": json.dumps(intake_data, default=str),
        }

        existing = self.find_latest(patient_name, dob, claim_number)

        try:
            with closing(self._connect()) as conn, conn:
                if existing:
                    values["updated_at"] = _next_timestamp(existing.updated_at)
                    assignments = ", ".join(f"{k} = ?" for k in values)
                    conn.execute(
                        f"UPDATE intake_updates SET {assignments} WHERE id = ?",
                        [*values.values(), existing.id],
                    )
                    record_id = existing.id
                    logger.info(f"Updated intake update {record_id} for {patient_name!r}")
                else:
                    record_id = str(uuid.uuid4())
                    now = _next_timestamp(None)
                    row = {
                        "id": record_id,
                        "patient_name": patient_name,
                        "patient_name_key": name_key(patient_name),
                        "dob": dob,
                        "claim_number": claim_number,
                        **values,
                        "created_at": now,
                        "updated_at": now,
                    }
                    conn.execute(
                        f"INSERT INTO intake_updates ({', '.join(_COLUMNS)}) "
                        f"VALUES ({', '.join('?' for _ in _COLUMNS)})",
                        [row[c] for c in _COLUMNS],
                    )
                    logger.info(f"Created intake update {record_id} for {patient_name!r}")
        except sqlite3.Error as e:
            raise StoreError(f"Intake update write failed: {e}") from e

        return self.get(record_id)

    # ------------------------------------------------------------------
    # ADL / work restrictions
    # ------------------------------------------------------------------
    def get_adl_restrictions(
        self,
        identity: Tuple[str, Optional[str], Optional[str]],
    ) -> Optional[Dict[str, Any]]:
        where, params = _identity_filter(*identity)
        try:
            with closing(self._connect()) as conn:
                row = conn.execute(
                    f"SELECT * FROM adl_restrictions WHERE {where} "
                    f"ORDER BY updated_at DESC LIMIT 1",
                    params,
                ).fetchone()
        except sqlite3.Error as e:
            raise StoreError(f"ADL restriction lookup failed: {e}") from e
        if not row:
            return None
        return {
            "adlsAffected": row["adls_affected"],
            "workRestrictions": row["work_restrictions"],
            "updatedAt": row["updated_at"],
        }

    def save_adl_restrictions(
        self,
        identity: Tuple[str, Optional[str], Optional[str]],
        adls_affected: str,
        work_restrictions: str,
    ) -> None:
        patient_name, dob, claim_number = identity
        where, params = _identity_filter(*identity)
        try:
            with closing(self._connect()) as conn, conn:
                row = conn.execute(
                    f"SELECT id, updated_at FROM adl_restrictions WHERE {where} "
                    f"ORDER BY updated_at DESC LIMIT 1",
                    params,
                ).fetchone()
                if row:
                    conn.execute(
                        "UPDATE adl_restrictions SET adls_affected = ?, work_restrictions = ?, "
                        "updated_at = ? WHERE id = ?",
                        (adls_affected, work_restrictions, _next_timestamp(row["updated_at"]), row["id"]),
                    )
                else:
                    now = _next_timestamp(None)
                    conn.execute(
                        "INSERT INTO adl_restrictions (id, patient_name, patient_name_key, dob, "
                        "claim_number, adls_affected, work_restrictions, created_at, updated_at) "
                        "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
                        (str(uuid.uuid4()), patient_name, name_key(patient_name), dob, claim_number,
                         adls_affected, work_restrictions, now, now),
                    )
        except sqlite3.Error as e:
            raise StoreError(f"ADL restriction write failed: {e}") from e
