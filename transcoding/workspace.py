import logging
import shutil
import time
from pathlib import Path
from uuid import uuid4

from django.conf import settings

logger = logging.getLogger(__name__)


class Workspace:
    """
    Scratch directory owned by exactly one stage invocation.

    Used as a context manager: the directory is created on enter and removed with
    everything under it on exit, whether the block finished, raised, or was
    interrupted by a Celery soft time limit. A host-level kill skips __exit__.
    """

    def __init__(self, prefix: str, root: Path | str | None = None):
        self.prefix = prefix
        self.root = Path(root or settings.TRANSCODE_SCRATCH_ROOT)
        self.dir: Path | None = None

    def __enter__(self) -> "Workspace":
        stamp = time.strftime("%Y%m%dT%H%M%S", time.gmtime())
        name = f"{self.prefix}-{stamp}-{uuid4().hex[:8]}"
        self.dir = self.root / name
        self.dir.mkdir(parents=True, exist_ok=False)
        logger.debug("Allocated workspace %s", self.dir)
        return self

    def __exit__(self, exc_type, exc, tb):
        self.cleanup()
        return False

    def path(self, name: str) -> Path:
        if self.dir is None:
            raise RuntimeError("Workspace is not active")
        return self.dir / name

    def subdir(self, name: str) -> Path:
        p = self.path(name)
        p.mkdir(parents=True, exist_ok=True)
        return p

    def cleanup(self) -> bool:
        """Best-effort removal; failures are logged, never raised."""
        if self.dir is None:
            return True
        target, self.dir = self.dir, None
        try:
            shutil.rmtree(target)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning("Could not remove workspace %s: %s", target, e)
            return False
        logger.debug("Removed workspace %s", target)
        return True
