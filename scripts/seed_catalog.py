#!/usr/bin/env python3
"""Seed the database with a small demo catalog and a starter code batch.

Usage:
    python -m scripts.seed_catalog
    # or from project root:
    python scripts/seed_catalog.py
"""

import asyncio
import sys
from pathlib import Path

# Ensure project root is on path
sys.path.insert(0, str(Path(__file__).resolve().parent.parent / "src"))

from credit_ledger.access.models import ArticleModel, CourseModel
from credit_ledger.access.service import AccessService
from credit_ledger.codes.service import CodeService
from credit_ledger.common.config import get_settings
from credit_ledger.common.database import DatabaseManager

CATALOG_SEEDS = [
    {"type": "course", "id": "course-python-101", "title": "Python 101", "credits_required": 50},
    {"type": "course", "id": "course-intro", "title": "Platform tour", "credits_required": 0},
    {"type": "article", "id": "article-welcome", "title": "Welcome", "credits_required": 0},
    {"type": "article", "id": "article-deep-dive", "title": "Async deep dive", "credits_required": 1},
]


async def seed_catalog() -> None:
    settings = get_settings()
    db = DatabaseManager(settings)
    await db.init()
    await db.create_all()

    access = AccessService(settings)
    codes = CodeService(settings)

    async with db.get_session() as session:
        for seed in CATALOG_SEEDS:
            model = CourseModel if seed["type"] == "course" else ArticleModel
            if await session.get(model, seed["id"]):
                print(f"  [skip] {seed['type']} {seed['id']} already exists")
                continue

            await access.create_resource(
                session,
                seed["type"],
                seed["title"],
                credits_required=seed["credits_required"],
                resource_id=seed["id"],
            )
            print(f"  [created] {seed['type']} {seed['id']}")

        batch = await codes.generate_codes(
            session, 5, credit_type="both", video_minutes=60, article_count=3,
        )
        for code in batch["codes"]:
            print(f"  [code] {code.code}")

    await db.close()
    print(f"\nDone. {len(CATALOG_SEEDS)} catalog entries checked.")


if __name__ == "__main__":
    asyncio.run(seed_catalog())
