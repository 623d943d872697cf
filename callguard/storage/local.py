"""Local recording storage.

Calls whose recording was copied into the service keep it under
``LOCAL_RECORDINGS_DIR``. Writes go to a temp file in the same directory
and are swapped in with ``os.replace``, so readers see either the old or
the new recording and never a partial one.
"""

import os
import tempfile
from pathlib import Path

import structlog

from callguard.config import Settings

logger = structlog.get_logger()


class LocalRecordingStore:
    """Reads and atomically replaces locally stored recordings."""

    def __init__(self, settings: Settings):
        self.root = Path(settings.local_recordings_dir)

    def resolve(self, local_path: str) -> Path:
        """Absolute location of a stored recording.

        Relative paths are taken relative to the recordings directory.
        """
        path = Path(local_path)
        if not path.is_absolute():
            path = self.root / path
        return path

    def exists(self, local_path: str) -> bool:
        return self.resolve(local_path).is_file()

    def read(self, local_path: str) -> bytes:
        """Read a whole recording.

        Raises:
            FileNotFoundError: If the recording does not exist
        """
        return self.resolve(local_path).read_bytes()

    def write_atomic(self, local_path: str, data: bytes) -> Path:
        """Replace a recording in one step."""
        target = self.resolve(local_path)
        target.parent.mkdir(parents=True, exist_ok=True)

        fd, temp_name = tempfile.mkstemp(
            prefix=".tmp-redacted-", suffix=target.suffix, dir=target.parent
        )
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(data)
                f.flush()
                os.fsync(f.fileno())
            os.replace(temp_name, target)
        except BaseException:
            Path(temp_name).unlink(missing_ok=True)
            raise

        logger.info("local_recording_replaced", path=str(target), size=len(data))
        return target
