"""
Write batch bodies to disk before delivery (debugging aid)
"""

import logging
from pathlib import Path
from typing import Union

from schemas.delivery import Batch

logger = logging.getLogger(__name__)


class BatchStager:
    """
    Keep a copy of every request body under ``<stage_dir>/<run_id>/``.

    Files are named ``batch-00001.ndjson`` in batch id order. Nothing reads
    them back; they exist for inspection and manual replay.
    """

    def __init__(self, stage_dir: Union[str, Path]):
        self.stage_dir = Path(stage_dir)

    def run_dir(self, run_id) -> Path:
        return self.stage_dir / str(run_id)

    def stage(self, run_id, batch: Batch) -> Path:
        directory = self.run_dir(run_id)
        directory.mkdir(parents=True, exist_ok=True)

        path = directory / f"batch-{batch.batch_id:05d}.ndjson"
        path.write_bytes(batch.to_ndjson())

        logger.debug(f"Staged batch {batch.batch_id} to {path}")
        return path
