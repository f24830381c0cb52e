"""
Create the catalog tables and seed the predefined tag catalog.

Safe to run repeatedly: existing tables are kept and curated tags are
refreshed in place.

Usage:
    python scripts/init_db.py
"""
from __future__ import annotations

import asyncio

from rich.console import Console
from rich.panel import Panel

from image_catalog.core.config import settings
from image_catalog.core.database import close_db, get_db_context, init_db
from image_catalog.core.redis import redis_client
from image_catalog.repositories import TagRepository
from image_catalog.services import CacheService, TagService

console = Console()


async def main():
    console.print(Panel.fit(
        "[bold cyan]Image Catalog Setup[/bold cyan]\n"
        "Creating tables and seeding predefined tags",
        border_style="cyan"
    ))

    try:
        await init_db()
        console.print("[green]✓[/green] Tables ready")

        async with get_db_context() as db:
            cache = CacheService.from_settings(redis_client, settings)
            seeded = await TagService(TagRepository(db), cache).seed_predefined_tags()
        console.print(f"[green]✓[/green] Seeded {seeded} predefined tags")
    finally:
        await redis_client.disconnect()
        await close_db()


if __name__ == "__main__":
    asyncio.run(main())
