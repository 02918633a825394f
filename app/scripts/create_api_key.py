"""Create a provider (or reuse one) and issue it a new API key.

Usage:
    python -m app.scripts.create_api_key --provider-name="Acme Dental" --email=ops@acme.example
    python -m app.scripts.create_api_key --provider-id=<uuid> --key-name=backend

The raw key is printed once and cannot be recovered afterwards.
"""

import argparse
import asyncio
import sys
import uuid
from typing import Optional

from sqlalchemy import select

from app.core.database import async_session
from app.models.provider import Provider
from app.services.auth import create_api_key


async def issue_key(
    provider_id: Optional[uuid.UUID],
    provider_name: Optional[str],
    email: Optional[str],
    key_name: Optional[str],
) -> None:
    async with async_session() as db:
        if provider_id:
            result = await db.execute(select(Provider).where(Provider.id == provider_id))
            provider = result.scalar_one_or_none()
            if not provider:
                print(f"Error: provider {provider_id} not found.", file=sys.stderr)
                sys.exit(1)
        else:
            provider = Provider(name=provider_name, email=email, is_active=True)
            db.add(provider)
            await db.flush()
            print(f"Created provider: {provider.name} ({provider.id})")

        api_key, raw_key = await create_api_key(db, provider.id, name=key_name)
        await db.commit()

    print(f"API key issued for provider {provider.id}")
    print(f"   Key id: {api_key.id}")
    print(f"   Key:    {raw_key}")
    print("Store it now; only its hash is kept.")


def main():
    """Parse CLI arguments and issue the key."""
    parser = argparse.ArgumentParser(description="Issue a ReserveKit API key")
    parser.add_argument("--provider-id", type=uuid.UUID, help="Existing provider to issue the key for")
    parser.add_argument("--provider-name", help="Name of a new provider to create")
    parser.add_argument("--email", help="Contact email of the new provider")
    parser.add_argument("--key-name", help="Label for the key (e.g., backend, staging)")

    args = parser.parse_args()

    if not args.provider_id and not args.provider_name:
        print("Error: pass --provider-id or --provider-name.", file=sys.stderr)
        sys.exit(1)

    asyncio.run(issue_key(args.provider_id, args.provider_name, args.email, args.key_name))


if __name__ == "__main__":
    main()
