#!/usr/bin/env python3
"""
Run one batch price update now (same as the scheduled job and POST /feed/update-prices).
Prints the per-ticker outcome; exits 1 if feed.json could not be saved.
Run: cd backend && python scripts/update_prices.py
"""
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from app.config import settings
from app.db.session import SessionLocal
from app.services.container import build_services
from app.services.invalidation import invalidate


def main():
    services = build_services(settings, SessionLocal)
    try:
        print(f"Updating prices (blob backend: {settings.blob_backend}, delay {settings.quote_request_delay_ms}ms)...")
        result = services.updater.run()
        invalidate(services)
        for ticker, quote in sorted(result.prices.items()):
            print(f"  {ticker:<12} {quote.price:>14,.2f} {quote.currency}")
        for err in result.errors:
            print(f"  {err['ticker']:<12} FAILED: {err['error']}")
        stats = result.to_dict()["stats"]
        print(
            f"Done. succeeded={stats['succeeded']}, failed={stats['failed']}, total={stats['total']}, "
            f"auto_closed={stats['autoClosed']}, duration={stats['duration']}"
        )
        if not result.snapshot_saved:
            sys.exit(1)
    finally:
        services.close()


if __name__ == "__main__":
    main()
