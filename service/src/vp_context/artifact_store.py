"""Async storage for finished recordings with automatic cleanup."""

import logging
from datetime import datetime, timedelta
from pathlib import Path

import aiofiles

from .models.capture import RecordingArtifact

logger = logging.getLogger(__name__)


class ArtifactStore:
    """
    Keeps a downloadable copy of each recording.

    Features:
    - Async file writes
    - Automatic old file cleanup
    """

    def __init__(self, data_dir: str):
        self.recordings_dir = Path(data_dir) / ".vp-context" / "recordings"
        self.recordings_dir.mkdir(parents=True, exist_ok=True)

    async def save(self, artifact: RecordingArtifact) -> str:
        """
        Save a recording asynchronously and return its file path.

        Args:
            artifact: Finished recording

        Returns:
            str: Path to saved file
        """
        filepath = self.recordings_dir / Path(artifact.filename).name

        try:
            async with aiofiles.open(filepath, "wb") as f:
                await f.write(artifact.data)

            logger.info(f"Saved recording: {filepath.name} ({artifact.size} bytes)")
            return str(filepath)

        except Exception as e:
            logger.error(f"Failed to save recording: {e}", exc_info=True)
            raise

    async def cleanup_old(self, max_age_hours: int = 24) -> int:
        """
        Delete recordings older than max_age_hours.

        Returns:
            int: Number of files removed
        """
        cutoff = datetime.now() - timedelta(hours=max_age_hours)
        removed_count = 0

        for recording in self.recordings_dir.iterdir():
            try:
                file_mtime = datetime.fromtimestamp(recording.stat().st_mtime)
                if recording.is_file() and file_mtime < cutoff:
                    recording.unlink()
                    removed_count += 1
            except Exception as e:
                logger.warning(f"Failed to delete {recording}: {e}")

        if removed_count > 0:
            logger.info(f"Cleaned up {removed_count} old recording(s)")

        return removed_count
