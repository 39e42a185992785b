#!/usr/bin/env python3
"""
Local Supplier Sync Script
Runs the supplier price sync from the command line instead of the scheduler.

Usage:
    python run_supplier_sync.py                 # all active suppliers
    python run_supplier_sync.py <supplier_id>   # one supplier
    python run_supplier_sync.py --stale         # only suppliers with stale prices
"""

import sys
import asyncio
import logging
from dotenv import load_dotenv

load_dotenv()
logging.basicConfig(level=logging.INFO)

from elta.sync import sync_all_suppliers, sync_supplier_prices, sync_stale_prices


async def run(args):
    if args and args[0] == "--stale":
        return await sync_stale_prices()
    if args:
        return [await sync_supplier_prices(args[0], trigger_type="manual")]
    return await sync_all_suppliers(trigger_type="manual")


def main():
    print("=" * 60)
    print("SUPPLIER PRICE SYNC")
    print("=" * 60)

    results = asyncio.run(run(sys.argv[1:]))

    for result in results:
        print(f"\n{result.get('supplier_code') or result.get('supplier_id')}: {result.get('status')}")
        print(f"  Updated: {result.get('updated', 0)} / {result.get('total', 0)}")
        print(f"  Price changes: {result.get('price_changes', 0)}")
        for error in result.get("errors") or []:
            print(f"  ERROR: {error}")
        if result.get("error"):
            print(f"  ERROR: {result['error']}")

    print("\n" + "=" * 60)
    print("DONE")
    print("=" * 60)

    failed = [r for r in results if r.get("status") == "failed"]
    sys.exit(1 if failed else 0)


if __name__ == "__main__":
    main()
