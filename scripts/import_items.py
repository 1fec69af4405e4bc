#!/usr/bin/env python3
"""
Load items from a CSV file into the inventory.
Usage:
  python scripts/import_items.py items.csv --user admin

Run it after ``pip install -e .`` so the application modules are importable.

The file needs a header row with at least ``barcode`` and ``item_name``;
``brand``, ``color``, ``size``, ``category``, ``price`` and ``receive_no`` are
picked up when present. Rows are upserted by barcode.
"""
import argparse
import csv
import sys

from app import create_app
from models import db
from services import InventoryService, InventoryServiceError
from services.store import UPSERT_FIELDS


def read_rows(path):
    with open(path, newline='', encoding='utf-8-sig') as handle:
        for number, raw in enumerate(csv.DictReader(handle), start=2):
            row = {key.strip().lower(): (value or '').strip() for key, value in raw.items() if key}
            if not row.get('barcode') or not row.get('item_name'):
                print(f'Skipping line {number}: barcode and item_name are required')
                continue
            try:
                row['price'] = float(row.get('price') or 0)
            except ValueError:
                print(f"Skipping line {number}: price {row['price']!r} is not a number")
                continue
            yield {key: row[key] for key in ('barcode',) + UPSERT_FIELDS if key in row}


def main(argv=None):
    parser = argparse.ArgumentParser(description='Import items from CSV')
    parser.add_argument('path', help='CSV file to import')
    parser.add_argument('--user', '-u', default='System', help='name recorded in the activity log')
    parser.add_argument('--db-uri', help='optional DB URI to override app config')
    args = parser.parse_args(argv)

    config = {}
    if args.db_uri:
        config['SQLALCHEMY_DATABASE_URI'] = args.db_uri

    app = create_app(config)
    with app.app_context():
        db.create_all()
        try:
            result = InventoryService().import_items(read_rows(args.path), actor=args.user)
        except InventoryServiceError as exc:
            print('Import failed:', exc)
            return 1
        print(f'Imported {result.added} new and {result.updated} updated item(s)')
        return 0


if __name__ == '__main__':
    sys.exit(main())
