# load_beneficiaries.py
"""
Load beneficiaries from a JSON file into the Postgres beneficiaries table.

  DATABASE_URL=postgresql://... python load_beneficiaries.py sample_data/beneficiaries.json
"""
import os
import sys
import logging

from dotenv import load_dotenv

from db_store import PostgresBeneficiaryStore, load_beneficiaries_json

log = logging.getLogger("load_beneficiaries")


def main(argv=None) -> int:
    load_dotenv(override=False)
    argv = sys.argv[1:] if argv is None else argv
    path = argv[0] if argv else os.getenv("BENEFICIARY_SEED_FILE", "sample_data/beneficiaries.json")

    beneficiaries = load_beneficiaries_json(path)
    store = PostgresBeneficiaryStore(os.getenv("DATABASE_URL", ""))
    inserted = store.insert_beneficiaries(beneficiaries)
    print(f"Inserted {inserted} of {len(beneficiaries)} beneficiaries from {path}.")
    return 0


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    sys.exit(main())
