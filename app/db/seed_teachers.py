"""
Seed the teacher directory of the active storage backend.

Usage:
  python -m app.db.seed_teachers add --username bu.guru --name "Bu Guru" --password Secret123
  python -m app.db.seed_teachers import-json legacy_db.json

import-json copies teachers from a JSON document ({"teachers": [...]}) into the active
store, but only when the store has no teachers yet. Entries may carry a bcrypt
"passwordHash" or a plain "password" (hashed on import).
"""

import argparse
import asyncio
import json
import logging
import time
from pathlib import Path
from typing import Optional

from app.auth.security import hash_password
from app.core.config import settings
from app.core.logging import configure_logging
from app.dispensations.records import TeacherRecord
from app.dispensations.store import DispensationStore, build_store

logger = logging.getLogger(__name__)


async def add_teacher(
    store: DispensationStore,
    username: str,
    name: str,
    password: str,
    role: str = "teacher",
    teacher_id: Optional[int] = None,
) -> TeacherRecord:
    existing = {t.username for t in await store.list_teachers()}
    if username in existing:
        raise ValueError(f"Teacher '{username}' already exists")
    teacher = TeacherRecord(
        id=teacher_id if teacher_id is not None else int(time.time() * 1000),
        username=username,
        name=name,
        role=role,
        password_hash=hash_password(password),
    )
    await store.add_teacher(teacher)
    logger.info("Added teacher %s", username)
    return teacher


async def seed_teachers_from_json(store: DispensationStore, path) -> int:
    """Copy teachers from a JSON document into an empty store. Returns how many were added."""
    if await store.list_teachers():
        logger.info("Store already has teachers; skipping import")
        return 0
    path = Path(path)
    if not path.exists():
        logger.warning("%s not found; nothing to import", path)
        return 0

    data = json.loads(path.read_text(encoding="utf-8"))
    added = 0
    for entry in data.get("teachers", []):
        password_hash = entry.get("passwordHash") or hash_password(str(entry.get("password", "")))
        await store.add_teacher(
            TeacherRecord(
                id=int(entry["id"]),
                username=entry["username"],
                name=entry.get("name") or entry["username"],
                role=entry.get("role") or "teacher",
                password_hash=password_hash,
            )
        )
        added += 1
    logger.info("Seeded %d teacher(s) from %s", added, path)
    return added


async def main(argv=None) -> None:
    parser = argparse.ArgumentParser(description="Seed teachers into the dispensation store")
    sub = parser.add_subparsers(dest="command", required=True)

    add = sub.add_parser("add", help="Add a single teacher")
    add.add_argument("--username", required=True)
    add.add_argument("--name", required=True)
    add.add_argument("--password", required=True)
    add.add_argument("--role", default="teacher")

    imp = sub.add_parser("import-json", help="Import teachers from a JSON document")
    imp.add_argument("path")

    args = parser.parse_args(argv)
    configure_logging(settings.log_level)

    store = build_store(settings)
    await store.init()
    try:
        if args.command == "add":
            await add_teacher(store, args.username, args.name, args.password, role=args.role)
        else:
            await seed_teachers_from_json(store, args.path)
    finally:
        await store.close()


if __name__ == "__main__":
    asyncio.run(main())
