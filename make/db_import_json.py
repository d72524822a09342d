from __future__ import annotations

import argparse
import json
from pathlib import Path

from sqlalchemy import create_engine, insert, select

from backend.app.db.models import TransactionMovement
from backend.app.schemas.transaction import TransactionCreate, parse_transaction_date
from backend.app.services.transactions import new_transaction_id

from ._common import normalize_sync_url

DEFAULT_SQLITE_URL = "sqlite:///./data/cashflow.db"


def import_transactions(database_url: str, input_path: Path) -> int:
    """Load a transactions.json file into the database.

    Records are validated with the same rules as the API. Ids already
    present in the database are skipped, so re-running an import is safe.
    Returns the number of inserted rows.
    """

    payload = json.loads(input_path.read_text(encoding="utf-8"))
    if not isinstance(payload, list):
        raise ValueError(f"{input_path} does not contain a JSON array")

    engine = create_engine(normalize_sync_url(database_url))
    table = TransactionMovement.__table__
    inserted = 0

    try:
        with engine.begin() as connection:
            existing = set(connection.execute(select(table.c.id)).scalars())
            for record in payload:
                transaction_id = record.get("id") or new_transaction_id()
                if transaction_id in existing:
                    continue
                data = TransactionCreate.model_validate(record)
                connection.execute(
                    insert(table).values(
                        id=transaction_id,
                        description=data.description,
                        price=data.price,
                        transaction_type=data.transaction_type.value,
                        transaction_date=parse_transaction_date(data.transaction_date).replace(
                            tzinfo=None
                        ),
                    )
                )
                existing.add(transaction_id)
                inserted += 1
    finally:
        engine.dispose()

    return inserted


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Import a transactions.json file into the database"
    )
    parser.add_argument(
        "--input",
        default=Path("data/transactions.json"),
        type=Path,
        help="Path to the JSON file used by the json storage backend",
    )
    parser.add_argument("--database-url", default=DEFAULT_SQLITE_URL, help="Target DATABASE_URL")
    args = parser.parse_args()

    count = import_transactions(args.database_url, args.input)
    print(f"imported {count} transactions from {args.input}")


if __name__ == "__main__":
    main()
