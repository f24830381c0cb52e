"""
Quick catalog diagnostic - show what's actually in the database.

Usage:
    python scripts/check_database.py
"""
from __future__ import annotations

import asyncio

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from image_catalog.core.database import close_db, get_db_context
from image_catalog.models.schemas import Pagination, SortParams
from image_catalog.repositories import ImageRepository, TagRepository
from image_catalog.services import QueryEngine

console = Console()


def format_size(size: float) -> str:
    for unit in ("B", "KiB", "MiB", "GiB"):
        if size < 1024:
            return f"{size:.1f} {unit}"
        size /= 1024
    return f"{size:.1f} TiB"


async def main():
    """Check database contents."""
    console.print(Panel.fit(
        "[bold cyan]Catalog Diagnostic[/bold cyan]\n"
        "Checking what's actually in the database",
        border_style="cyan"
    ))

    try:
        async with get_db_context() as db:
            tags = TagRepository(db)
            engine = QueryEngine(ImageRepository(db), tags)

            stats = await engine.get_stats()
            console.print("\n[bold]Totals:[/bold]")
            console.print(f"  Images: {stats.total_images}")
            console.print(f"  Tags: {await tags.count()}")
            console.print(f"  Content types: {stats.content_types}")
            console.print(f"  Stored: {format_size(stats.total_size)} (avg {format_size(stats.average_size)})")

            popular = Table(title="Most Used Tags")
            popular.add_column("Tag", style="cyan")
            popular.add_column("Images", justify="right", style="yellow")
            for tag, count in await tags.get_popular(15):
                popular.add_row(tag.name, str(count))
            console.print(popular)

            if stats.total_images:
                recent = Table(title="Latest Uploads")
                recent.add_column("ID", justify="right", style="dim")
                recent.add_column("Filename", style="cyan", width=40)
                recent.add_column("Tags", style="green")
                for image in await engine.list_with_tags(Pagination(limit=10), SortParams()):
                    recent.add_row(
                        str(image.id),
                        image.original_filename[:40],
                        ", ".join(tag.name for tag in image.tags),
                    )
                console.print(recent)
    finally:
        await close_db()


if __name__ == "__main__":
    asyncio.run(main())
