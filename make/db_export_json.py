from __future__ import annotations

import argparse
import json
from pathlib import Path

from sqlalchemy import create_engine, select

from backend.app.db.models import TransactionMovement
from backend.app.schemas.transaction import format_transaction_date

from ._common import normalize_sync_url

DEFAULT_SQLITE_URL = "sqlite:///./data/cashflow.db"


def export_transactions(database_url: str, output_path: Path) -> int:
    """Dump every stored transaction into the JSON file storage format."""

    engine = create_engine(normalize_sync_url(database_url))
    table = TransactionMovement.__table__
    records: list[dict[str, object]] = []

    try:
        with engine.begin() as connection:
            result = connection.execute(
                select(table).order_by(table.c.transaction_date, table.c.id)
            )
            for row in result.mappings():
                records.append(
                    {
                        "id": row["id"],
                        "description": row["description"],
                        "price": row["price"],
                        "transactionType": row["transaction_type"],
                        "transactionDate": format_transaction_date(row["transaction_date"]),
                    }
                )
    finally:
        engine.dispose()

    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_text(json.dumps(records, ensure_ascii=False, indent=2), encoding="utf-8")
    return len(records)


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Export stored transactions into a transactions.json file"
    )
    parser.add_argument("--database-url", default=DEFAULT_SQLITE_URL, help="Source DATABASE_URL")
    parser.add_argument(
        "--output",
        default=Path("data/transactions.json"),
        type=Path,
        help="Path of the JSON file to write",
    )
    args = parser.parse_args()

    count = export_transactions(args.database_url, args.output)
    print(f"exported {count} transactions to {args.output}")


if __name__ == "__main__":
    main()
