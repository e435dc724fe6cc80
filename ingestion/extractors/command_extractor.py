"""
Record source backed by a cloud provider CLI command
"""

import asyncio
import logging
from typing import AsyncIterator, List, Optional, Sequence, Dict

from ingestion.base import RecordSource, RawRecord
from ingestion.extractors.file_extractor import parse_json_records

logger = logging.getLogger(__name__)


class CommandSource(RecordSource):
    """
    Run a list command and parse its JSON output.

    The command is executed without a shell; ``argv`` must request JSON
    output from the CLI (for example ``--format=json`` or ``--output json``).
    """

    def __init__(
        self,
        source_name: str,
        argv: Sequence[str],
        timeout: Optional[float] = 300.0,
        env: Optional[Dict[str, str]] = None
    ):
        super().__init__(source_name)
        if not argv:
            raise ValueError("argv must not be empty")
        self.argv: List[str] = list(argv)
        self.timeout = timeout
        self.env = env

    async def _run(self) -> bytes:
        command = " ".join(self.argv)
        logger.info(f"Running: {command}")

        try:
            process = await asyncio.create_subprocess_exec(
                *self.argv,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=self.env
            )
        except OSError as e:
            raise self.unavailable(f"Cannot start command {self.argv[0]!r}", original_exception=e, command=command)

        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=self.timeout)
        except asyncio.TimeoutError as e:
            process.kill()
            await process.wait()
            raise self.unavailable(
                f"Command timed out after {self.timeout} seconds",
                original_exception=e,
                command=command
            )

        if process.returncode != 0:
            raise self.unavailable(
                f"Command exited with status {process.returncode}",
                command=command,
                stderr=stderr.decode("utf-8", errors="replace")[-500:].strip()
            )

        return stdout

    async def iter_records(self) -> AsyncIterator[RawRecord]:
        stdout = await self._run()

        try:
            records = parse_json_records(stdout.decode("utf-8"))
        except (UnicodeDecodeError, ValueError) as e:
            raise self.unavailable(
                "Command output is not valid JSON",
                original_exception=e,
                command=" ".join(self.argv)
            )

        logger.info(f"Command returned {len(records)} records for {self.source_name}")
        for record in records:
            yield record
