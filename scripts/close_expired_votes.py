#!/usr/bin/env python3
"""
Close votes whose time limit has passed.

The engine never runs timers; `time_limit` is advisory. Run this from cron
(or any scheduler) to force-close overdue votes through the API:

Usage:
    python scripts/close_expired_votes.py --token $BOARDVOTE_TOKEN
    python scripts/close_expired_votes.py --base-url http://localhost:8000 --dry-run

Requires:
    - Backend running at --base-url
    - A bearer token for a user with a vote manager role
"""
import argparse
import asyncio
import os
import sys
from typing import Optional

import httpx

# Configuration
BASE_URL = os.environ.get("BOARDVOTE_URL", "http://localhost:8000")


async def fetch_overdue(client: httpx.AsyncClient, base_url: str) -> list[dict]:
    response = await client.get(f"{base_url}/api/v1/votes/overdue")
    response.raise_for_status()
    return response.json()


async def close_vote(client: httpx.AsyncClient, base_url: str, headers: dict, vote_id: str) -> Optional[dict]:
    """Force-close one vote. Returns the close response, or None if it was no longer open."""
    response = await client.post(
        f"{base_url}/api/v1/votes/{vote_id}/close",
        headers=headers,
        json={"force": True},
    )
    if response.status_code == 409:
        print(f"  {vote_id}: not open ({response.json().get('current_status')}), skipped")
        return None
    response.raise_for_status()
    return response.json()


async def main(base_url: str, token: Optional[str], dry_run: bool) -> int:
    headers = {"Authorization": f"Bearer {token}"} if token else {}
    closed = 0

    async with httpx.AsyncClient(timeout=30.0) as client:
        try:
            overdue = await fetch_overdue(client, base_url)
        except httpx.HTTPError as e:
            print(f"Could not list overdue votes: {e}")
            return 1

        print(f"Found {len(overdue)} overdue vote(s)")
        for item in overdue:
            vote = item["vote"]
            print(f"- {vote['id']} '{vote['title']}' (due {item['closes_at']})")
            if dry_run:
                continue
            try:
                result = await close_vote(client, base_url, headers, vote["id"])
            except httpx.HTTPError as e:
                print(f"  {vote['id']}: close failed: {e}")
                continue
            if result is not None:
                closed += 1
                print(f"  closed: {result['results']['summary']['outcome']}")

    print(f"\nClosed {closed} vote(s)")
    return 0


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Force-close votes past their time limit")
    parser.add_argument("--base-url", default=BASE_URL)
    parser.add_argument("--token", default=os.environ.get("BOARDVOTE_TOKEN"))
    parser.add_argument("--dry-run", action="store_true", help="List overdue votes without closing them")
    return parser.parse_args(argv)


if __name__ == "__main__":
    args = parse_args()
    if not args.token and not args.dry_run:
        print("A bearer token is required (--token or BOARDVOTE_TOKEN)")
        sys.exit(1)
    sys.exit(asyncio.run(main(args.base_url.rstrip("/"), args.token, args.dry_run)))
