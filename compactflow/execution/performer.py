# compactflow/execution/performer.py
import importlib
import logging
import subprocess
from pathlib import Path
from typing import List, Optional, Sequence

from compactflow.common.exceptions import CompactionError, WorkFunctionLoadError
from compactflow.server.context import JobContext
from compactflow.server.processor import WorkFunction

logger = logging.getLogger(__name__)

TEMPLATE_DISK_NAME = "UVHD-template.vhdx"
_GB = 1024 ** 3


def load_work_function(target: str) -> WorkFunction:
    """Imports a work function given as ``package.module:function``."""
    module_name, _, func_name = target.partition(":")
    if not func_name:
        module_name, _, func_name = target.rpartition(".")
    try:
        module = importlib.import_module(module_name)
        work = getattr(module, func_name)
    except (ImportError, AttributeError, ValueError) as e:
        raise WorkFunctionLoadError(f"Could not load work function: {target}") from e
    if not callable(work):
        raise WorkFunctionLoadError(f"Work function is not callable: {target}")
    return work


def _size_gb(path: Path) -> float:
    return path.stat().st_size / _GB


class VhdxCompactor:
    """
    Default work function: compacts each user profile disk of a job with an
    external command.

    ``command`` is an argument list; ``{file}``, ``{defrag}`` and
    ``{zero_free_space}`` are substituted per disk (flags become ``true`` or
    ``false``). Without a command the disks are only measured.
    """

    def __init__(self, command: Sequence[str] = (), timeout: Optional[float] = None):
        self.command = list(command)
        self.timeout = timeout

    def targets(self, context: JobContext) -> List[Path]:
        params = context.parameters
        if params.single_file:
            disk = Path(params.single_file)
            if not disk.is_file():
                raise CompactionError(f"Disk not found: {disk}")
            return [disk]

        folder = Path(params.path or "")
        if not folder.is_dir():
            raise CompactionError(f"Folder not found: {folder}")
        return sorted(
            disk for disk in folder.glob("*.vhdx")
            if disk.is_file()
            and (params.include_template or disk.name.lower() != TEMPLATE_DISK_NAME.lower())
        )

    def _command_for(self, disk: Path, context: JobContext) -> List[str]:
        params = context.parameters
        values = {
            "file": str(disk),
            "defrag": "true" if params.defrag else "false",
            "zero_free_space": "true" if params.zero_free_space else "false",
        }
        return [arg.format(**values) for arg in self.command]

    def _compact(self, disk: Path, context: JobContext) -> bool:
        cmd = self._command_for(disk, context)
        try:
            result = subprocess.run(
                cmd, capture_output=True, text=True, timeout=self.timeout
            )
        except subprocess.TimeoutExpired:
            context.error(f"{disk.name}: timed out after {self.timeout} seconds")
            return False
        except OSError as e:
            context.error(f"{disk.name}: could not run compaction command: {e}")
            return False

        if result.returncode != 0:
            detail = (result.stderr or result.stdout).strip()
            message = f"{disk.name}: exit code {result.returncode}"
            if detail:
                message += f": {detail}"
            context.error(message)
            return False
        return True

    def __call__(self, context: JobContext) -> None:
        disks = self.targets(context)
        context.set_total_files(len(disks))
        if not disks:
            context.info(f"No disks found in {context.parameters.target}")
            return

        before = sum(_size_gb(d) for d in disks)
        context.set_sizes(before=before)
        if not self.command:
            context.info("No compaction command configured, disks were only measured")

        failures = 0
        for disk in disks:
            if self.command and not self._compact(disk, context):
                failures += 1
            context.file_processed()

        after = sum(_size_gb(d) for d in disks if d.exists())
        context.set_sizes(after=after)
        context.info(
            f"Processed {len(disks)} disk(s), {before:.2f} GB -> {after:.2f} GB"
        )
        if failures == len(disks) and self.command:
            raise CompactionError(f"Compaction failed for all {failures} disk(s)")
