"""Seed a demo companion into Firestore and print a bearer token for its owner.

Standalone script, independent of the FastAPI process. Useful for local
development before an identity provider issues real tokens.

Usage:
    # from the project root
    python scripts/seed_companion.py --user-id demo_user_001
    python scripts/seed_companion.py --user-id demo_user_001 --file data/companions/lumen.json
"""

import argparse
import json
import sys
from pathlib import Path

# Add backend/ to the path when run standalone
_BACKEND_PATH = Path(__file__).parent.parent / "backend"
if str(_BACKEND_PATH) not in sys.path:
    sys.path.insert(0, str(_BACKEND_PATH))

from app.core.config import get_settings  # noqa: E402
from app.core.security import issue_token  # noqa: E402
from app.models.companion import CompanionCreate  # noqa: E402
from app.services.companion import CompanionRepository  # noqa: E402

_DEFAULT_COMPANION_PATH = Path(__file__).parent.parent / "data" / "companions" / "lumen.json"


def load_companion(path: Path) -> CompanionCreate:
    """Read a CompanionCreate JSON document."""
    with open(path, encoding="utf-8") as f:
        data = json.load(f)
    return CompanionCreate(**data)


def seed(user_id: str, path: Path) -> None:
    settings = get_settings()
    repository = CompanionRepository(database=settings.firestore_database)
    companion = repository.create(user_id, load_companion(path))
    token = issue_token(user_id, settings.auth_secret, settings.auth_token_ttl_minutes)
    print(f"Created companion {companion.name}: {companion.id}")
    print(f"Authorization: Bearer {token}")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Seed a demo companion into Firestore.")
    parser.add_argument("--user-id", required=True, help="Owner user id.")
    parser.add_argument(
        "--file",
        type=Path,
        default=_DEFAULT_COMPANION_PATH,
        help="CompanionCreate JSON file.",
    )
    args = parser.parse_args()
    seed(args.user_id, args.file)
