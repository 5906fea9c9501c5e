"""
Dev bootstrap script — issue an API key for local development.

Usage:
    python -m scripts.bootstrap_dev dev@example.com

This will:
  1. Create the kv_entries table when running against SQLite
  2. Issue a key for the email (or re-read the existing one)
  3. Print the key and today's usage

No email is sent — the key is only printed here.
"""

import asyncio
import sys

# Ensure the project root is on the path
sys.path.insert(0, ".")

from app.core.database import Base, engine
from app.services.key_registry import get_key_registry
import app.models.kv_entry  # noqa: F401


async def main(email: str) -> None:
    if engine.dialect.name == "sqlite":
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    registry = get_key_registry()
    result = await registry.create_key(email)
    info = await registry.get_key_info(email)

    # ── Print results ───────────────────────────────────────
    print()
    print("=" * 60)
    print("  Dev Bootstrap Complete")
    print("=" * 60)
    print()
    print(f"  Email:       {email}")
    print(f"  New key:     {'yes' if result.is_new else 'no (already registered)'}")
    print(f"  Daily limit: {info.daily_limit}")
    print(f"  Used today:  {info.requests_today}")
    print()
    print(f"  API Key:     {result.api_key}")
    print("=" * 60)
    print()

    await engine.dispose()


if __name__ == "__main__":
    if len(sys.argv) != 2:
        print("usage: python -m scripts.bootstrap_dev <email>", file=sys.stderr)
        sys.exit(2)
    asyncio.run(main(sys.argv[1]))
