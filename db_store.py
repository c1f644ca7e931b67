# db_store.py
"""
Beneficiary stores: a Postgres adapter over the CCW beneficiaries table and an
in-memory store for local development and tests.
"""

import os
import json
import logging
from typing import Any, Dict, Iterable, List, Optional
import psycopg2
import psycopg2.extras
from pydantic import BaseModel, Field

log = logging.getLogger("db_store")
DATABASE_URL = os.getenv("DATABASE_URL", "").strip()

BENEFICIARY_COLUMNS = (
    "beneficiary_id",
    "medicare_enrollment_status_code",
    "entitlement_code_original",
    "entitlement_code_current",
    "end_stage_renal_disease_code",
    "part_a_termination_code",
    "part_b_termination_code",
    "part_d_contract_number_ids",
)


class NoResultError(LookupError):
    """No beneficiary matches the requested id."""


class MultipleResultsError(RuntimeError):
    """More than one beneficiary row matched a primary key lookup."""


class Beneficiary(BaseModel):
    beneficiary_id: str = Field(..., min_length=1)
    medicare_enrollment_status_code: Optional[str] = None
    entitlement_code_original: Optional[str] = None
    entitlement_code_current: Optional[str] = None
    end_stage_renal_disease_code: Optional[str] = None
    part_a_termination_code: Optional[str] = None
    part_b_termination_code: Optional[str] = None
    # Part D contract id for each month, January first; None for months without one.
    part_d_contract_number_ids: List[Optional[str]] = Field(default_factory=list)


class BeneficiaryStore:
    kind = "abstract"

    def find_beneficiary_by_id(self, beneficiary_id: str) -> Beneficiary:
        """Return the matching beneficiary or raise NoResultError."""
        raise NotImplementedError


class InMemoryBeneficiaryStore(BeneficiaryStore):
    kind = "memory"

    def __init__(self, beneficiaries: Iterable[Beneficiary] = ()):
        self._beneficiaries: Dict[str, Beneficiary] = {}
        for b in beneficiaries:
            self.add(b)

    def add(self, beneficiary: Beneficiary) -> None:
        self._beneficiaries[beneficiary.beneficiary_id] = beneficiary

    def find_beneficiary_by_id(self, beneficiary_id: str) -> Beneficiary:
        b = self._beneficiaries.get(beneficiary_id)
        if b is None:
            raise NoResultError(beneficiary_id)
        return b

    def __len__(self) -> int:
        return len(self._beneficiaries)


def load_beneficiaries_json(path: str) -> List[Beneficiary]:
    with open(path, "r") as f:
        data = json.load(f)
    if isinstance(data, dict):
        data = [data]
    return [Beneficiary(**row) for row in data]


class PostgresBeneficiaryStore(BeneficiaryStore):
    kind = "postgres"

    def __init__(self, dsn: Optional[str] = None):
        self.dsn = (dsn or DATABASE_URL).strip()

    def _get_conn(self):
        if not self.dsn:
            raise RuntimeError("DATABASE_URL is not set")
        # Connection - no autocommit; the context manager ends the transaction
        return psycopg2.connect(self.dsn)

    def find_beneficiary_by_id(self, beneficiary_id: str) -> Beneficiary:
        conn = self._get_conn()
        try:
            with conn:
                with conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor) as cur:
                    cur.execute(
                        "SELECT " + ", ".join(BENEFICIARY_COLUMNS) + " FROM public.beneficiaries WHERE beneficiary_id = %s;",
                        (beneficiary_id,),
                    )
                    rows = cur.fetchmany(2)
        finally:
            conn.close()
        if not rows:
            raise NoResultError(beneficiary_id)
        if len(rows) > 1:
            raise MultipleResultsError(f"More than one beneficiary with id {beneficiary_id!r}")
        return _row_to_beneficiary(rows[0])

    def insert_beneficiaries(self, beneficiaries: Iterable[Beneficiary]) -> int:
        conn = self._get_conn()
        count = 0
        try:
            with conn:
                with conn.cursor() as cur:
                    for b in beneficiaries:
                        values = b.model_dump()
                        cur.execute(
                            "INSERT INTO public.beneficiaries (" + ", ".join(BENEFICIARY_COLUMNS) + ") "
                            "VALUES (" + ", ".join(["%s"] * len(BENEFICIARY_COLUMNS)) + ") "
                            "ON CONFLICT (beneficiary_id) DO NOTHING;",
                            tuple(values[c] for c in BENEFICIARY_COLUMNS),
                        )
                        count += cur.rowcount
        finally:
            conn.close()
        return count


def _row_to_beneficiary(row: Dict[str, Any]) -> Beneficiary:
    data = dict(row)
    contracts = data.get("part_d_contract_number_ids")
    if contracts is None:
        data["part_d_contract_number_ids"] = []
    elif isinstance(contracts, str):
        # text column holding a JSON array
        data["part_d_contract_number_ids"] = json.loads(contracts)
    return Beneficiary(**data)
