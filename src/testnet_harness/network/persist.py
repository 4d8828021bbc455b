"""Preservation of node artifacts after a failed test."""

from __future__ import annotations

import logging
import shutil
import tempfile
from collections.abc import Mapping
from pathlib import Path

from testnet_harness.config import HARNESS_PERSIST_PREFIX

logger = logging.getLogger(__name__)


def persist_dir_on_failure(
    directory: Path,
    additional_contents: Mapping[str, str] | None = None,
    prefix: str = HARNESS_PERSIST_PREFIX,
) -> Path:
    """
    Copy ``directory`` aside for post-mortem inspection.

    Args:
        directory: Working directory to preserve. A missing directory is skipped.
        additional_contents: Extra text files to write next to the copy, by name.
        prefix: Prefix of the fresh temporary directory.

    Returns:
        The temporary directory holding the copy and the extra files.
    """
    target = Path(tempfile.mkdtemp(prefix=prefix))

    if directory.exists():
        shutil.copytree(directory, target / directory.name, dirs_exist_ok=True)
    else:
        logger.warning("Nothing to persist at %s", directory)

    for name, text in (additional_contents or {}).items():
        (target / name).write_text(text, encoding="utf-8")

    logger.warning("Persisted %s to %s", directory, target)
    return target
