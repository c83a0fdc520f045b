import os
import shutil
import logging
import tempfile
from pathlib import Path
from typing import Optional
from plexnorm.domain.errors import SetupError

class RunWorkspace:
    """Per-run temporary directory for control files.

    Holds the loudnorm statistics of two-pass runs and the stderr log of every
    encoder process. Created before any job starts and removed at teardown.
    """

    def __init__(self, temp_root: Optional[Path] = None, prefix: str = "plexnorm_run."):
        self.temp_root = Path(temp_root) if temp_root else Path(os.environ.get("TMPDIR") or tempfile.gettempdir())
        self.prefix = prefix
        self.path: Optional[Path] = None
        self.logger = logging.getLogger(__name__)

    def create(self) -> Path:
        try:
            self.path = Path(tempfile.mkdtemp(prefix=self.prefix, dir=str(self.temp_root)))
        except OSError as e:
            raise SetupError(f"Failed to create run workspace in {self.temp_root}: {e}") from e
        os.chmod(self.path, 0o700)
        self.logger.debug(f"WORKSPACE_CREATED: {self.path}")
        return self.path

    def _require(self) -> Path:
        if self.path is None:
            raise SetupError("Run workspace has not been created")
        return self.path

    def stderr_log(self, job_id: int) -> Path:
        return self._require() / f"job_{job_id}.stderr.log"

    def loudnorm_stats(self, job_id: int) -> Path:
        return self._require() / f"job_{job_id}.loudnorm.log"

    def cleanup(self):
        """Removes the workspace directory (idempotent)."""
        if self.path is None:
            return
        shutil.rmtree(self.path, ignore_errors=True)
        self.logger.debug(f"WORKSPACE_REMOVED: {self.path}")
        self.path = None
