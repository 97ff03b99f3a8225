"""Build the card atlas from the command line.

Usage:
  python -m assets_admin.build_atlas

Reads the same environment as the server (CARDS_DIR, ATLAS_DIR,
GAME_ATLAS_DIR, ...) and exits non-zero when the build fails or any
destination could not be written.
"""

from __future__ import annotations

import logging

from assets_admin.config import load_settings
from assets_admin.errors import AssetError
from assets_admin.service import AssetManager


logger = logging.getLogger(__name__)


def main() -> int:
    settings = load_settings()
    logging.basicConfig(level=settings.log_level, format="%(levelname)s %(name)s: %(message)s")

    try:
        result = AssetManager(settings).build_atlas()
    except AssetError as exc:
        logger.error("Atlas build failed (%s): %s", exc.kind, exc.message)
        return 1

    for dest in result.destinations:
        if dest.ok:
            logger.info("Wrote %s", dest.directory)
        else:
            logger.error("Could not write %s: %s", dest.directory, dest.error)
    if result.skipped:
        logger.warning("Left %d unreadable frame(s) blank: %s", len(result.skipped), ", ".join(result.skipped))
    if result.duplicates:
        logger.warning("Left out %d file(s) whose frame name was taken: %s", len(result.duplicates), ", ".join(result.duplicates))
    return 0 if result.success else 2


if __name__ == "__main__":
    raise SystemExit(main())
