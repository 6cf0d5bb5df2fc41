#!/usr/bin/env python3
"""
Regenerate feed.json from the posts table (reconcile after a failed snapshot write or manual DB edits).
Existing prices entries are kept for tickers still in use.
Run: cd backend && python scripts/rebuild_feed.py
"""
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from app.config import settings
from app.db.session import SessionLocal
from app.services.container import build_services
from app.services.feed import rebuild_feed
from app.services.invalidation import invalidate


def main():
    services = build_services(settings, SessionLocal)
    db = SessionLocal()
    try:
        doc = rebuild_feed(db, services.store)
        invalidate(services)
        print(f"Done. posts={doc['totalPosts']}, tickers={len(doc['prices'])}")
    finally:
        db.close()
        services.close()


if __name__ == "__main__":
    main()
