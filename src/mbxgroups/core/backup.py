"""Backup utilities for group membership snapshots."""

from __future__ import annotations

import json
import logging
import re
from dataclasses import asdict
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING

from mbxgroups.core.config import get_project_root

if TYPE_CHECKING:
    from mbxgroups.groups.models import MailGroup

logger = logging.getLogger(__name__)

DEFAULT_BACKUP_DIR = "backups"


def get_backup_dir(base_dir: Path | str = DEFAULT_BACKUP_DIR) -> Path:
    """Get or create the backup directory.

    A relative directory is resolved against the project root, the same
    place the config directory is read from.

    Args:
        base_dir: Base directory for backups

    Returns:
        Path to backup directory
    """
    backup_path = Path(base_dir)
    if not backup_path.is_absolute():
        try:
            backup_path = get_project_root() / backup_path
        except RuntimeError:
            backup_path = Path.cwd() / backup_path
    backup_path.mkdir(parents=True, exist_ok=True)
    return backup_path


def _slugify(value: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", value.lower()).strip("-")
    return slug or "group"


def backup_group_membership(
    group: MailGroup,
    members: list[str],
    backup_dir: Path | str = DEFAULT_BACKUP_DIR,
) -> Path:
    """Backup a group's current membership to a JSON file.

    Args:
        group: Group being changed
        members: Current member addresses
        backup_dir: Directory to save backup (relative to the project root)

    Returns:
        Path to the created backup file
    """
    backup_dir = get_backup_dir(backup_dir)
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S_%f")
    filename = f"membership_{_slugify(group.display_name)}_{timestamp}.json"
    filepath = backup_dir / filename

    data = {
        "backup_type": "group_membership",
        "timestamp": datetime.now().isoformat(),
        "group": asdict(group),
        "count": len(members),
        "members": sorted(members),
    }

    with filepath.open("w") as f:
        json.dump(data, f, indent=2, default=str)

    logger.info(f"Backed up {len(members)} members of {group.display_name} to {filepath}")
    return filepath
