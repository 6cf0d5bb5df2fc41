#!/usr/bin/env python3
"""
Force-issue a new KIS access token and store it in provider_tokens (run daily before market open).
Running workers pick it up when their cached token is rejected or expires.
Run: cd backend && python scripts/refresh_token.py
"""
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

import httpx

from app.config import settings
from app.core.errors import UpstreamError
from app.db.session import SessionLocal
from app.services.quotes.config import KisConfig
from app.services.quotes.token import KisTokenManager


def main():
    config = KisConfig(app_key=settings.kis_app_key, app_secret=settings.kis_app_secret, base_url=settings.kis_base_url)
    with httpx.Client(timeout=15.0) as http:
        tokens = KisTokenManager(config, http, session_factory=SessionLocal)
        print(f"Refreshing KIS token ({config.base_url})...")
        try:
            token = tokens.get_token(force_refresh=True)
        except UpstreamError as e:
            print(f"FAILED: {e.message}")
            sys.exit(1)
    print(f"Done. token={token[:8]}... stored in provider_tokens")


if __name__ == "__main__":
    main()
