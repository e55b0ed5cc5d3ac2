"""
Run an ANP fuel price spreadsheet ingestion from the CLI.
"""

from __future__ import annotations

import argparse
import json
import logging

from app.domain.errors import RunAbortedError
from app.services.spreadsheet_ingestion_service import get_spreadsheet_ingestion_service
from db.session import SessionLocal


def main() -> int:
    parser = argparse.ArgumentParser(description="Ingest an ANP fuel price spreadsheet.")
    source = parser.add_mutually_exclusive_group(required=True)
    source.add_argument("--url", dest="url", default=None, help="Spreadsheet URL to download.")
    source.add_argument("--path", dest="path", default=None, help="Local spreadsheet path.")
    parser.add_argument(
        "--error-limit",
        dest="error_limit",
        type=int,
        default=None,
        help="Print at most this many row errors.",
    )
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s [%(name)s] %(message)s")

    service = get_spreadsheet_ingestion_service()
    with SessionLocal() as db:
        try:
            if args.url:
                result = service.ingest_url(db=db, url=args.url)
            else:
                result = service.ingest_path(db=db, path=args.path)
        except RunAbortedError as exc:
            print(json.dumps({"status": "failed", "error": str(exc)}, indent=2))
            return 1

    print(json.dumps(result.to_dict(error_limit=args.error_limit), indent=2, ensure_ascii=False))
    return 0 if result.error_count == 0 else 2


if __name__ == "__main__":
    raise SystemExit(main())
