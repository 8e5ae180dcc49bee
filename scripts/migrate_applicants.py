"""
Backfill fields required by the licensing flow on existing applications.
Run: python -m scripts.migrate_applicants (from the project root).

Safe to run repeatedly: records that already have every field are skipped.
"""
import asyncio
import os
import sys
from datetime import datetime, timezone
from typing import Any

# Add parent so we can import from the project root
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from sqlalchemy import select

from database import AsyncSessionLocal, init_db
from models import DriverApplication
from services.records import empty_checklist


def plan_updates(app: DriverApplication) -> dict[str, Any]:
    """Fields to set on one record; empty when it is already up to date."""
    updates: dict[str, Any] = {}
    details = app.licensed_details or {}

    is_licensed = app.is_licensed_driver
    if is_licensed is None:
        is_licensed = bool(details.get("badge_number") or details.get("driving_license_number"))
        updates["is_licensed_driver"] = is_licensed

    if is_licensed is False and not app.unlicensed_progress:
        updates["unlicensed_progress"] = empty_checklist()

    if app.documents is None:
        updates["documents"] = {}

    if app.has_own_vehicle is None and any(
        details.get(k) for k in ("vehicle_make", "vehicle_model", "vehicle_reg")
    ):
        updates["has_own_vehicle"] = True

    if app.created_at is None:
        updates["created_at"] = datetime.now(timezone.utc)
    return updates


async def migrate(sessionmaker=AsyncSessionLocal) -> tuple[int, int]:
    updated = skipped = 0
    async with sessionmaker() as session:
        result = await session.execute(select(DriverApplication))
        apps = result.scalars().all()
        if not apps:
            print("No applications found in database.")
            return 0, 0
        print(f"Found {len(apps)} applications to check.\n")
        for app in apps:
            print(f"Checking application: {app.id} ({app.first_name} {app.last_name})")
            updates = plan_updates(app)
            if not updates:
                skipped += 1
                print("  No updates needed")
                continue
            for name, value in updates.items():
                setattr(app, name, value)
                print(f"  Set {name}")
            updated += 1
        await session.commit()
    return updated, skipped


async def main() -> int:
    try:
        await init_db()
        updated, skipped = await migrate()
    except Exception as e:
        print(f"Error during migration: {e}", file=sys.stderr)
        return 1
    print("\nMigration complete!")
    print(f"Updated: {updated} applications")
    print(f"Skipped: {skipped} applications (already up to date)")
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
