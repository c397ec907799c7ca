# SPDX-FileCopyrightText: 2022-present Matthew Swabey <matthew@swabey.org>
#
# SPDX-License-Identifier: AGPL-3.0-or-later

import shlex
import shutil
import subprocess
import tempfile
from logging import getLogger
from pathlib import Path
from typing import Callable, Dict, List, Optional, Union

from attrs import define, field

from .config import Settings
from .tasks import Outcome, Task
from .walker import sp

logger = getLogger(__name__)


@define
class EncoderCommand:
    """Runs the encoder once to turn src into tgt.

    The encoder writes into a private temporary directory and the result is
    only moved to tgt once the encoder exits cleanly.
    """

    exe: Path = field(converter=Path)
    cmd: str
    cmd_args: Dict[str, Union[int, str]] = field(factory=dict)
    timeout: Optional[float] = None

    @classmethod
    def from_settings(cls, settings: Settings, exe: Path) -> "EncoderCommand":
        return cls(
            exe=exe,
            cmd=settings.encoder_cmd,
            cmd_args=settings.encoder_cmd_args,
            timeout=settings.timeout,
        )

    def build(self, src: Path, tgt: Path) -> List[str]:
        fields: Dict[str, Union[int, str]] = dict(self.cmd_args)
        fields.update(input=str(src), output=str(tgt))
        cmd = [str(self.exe)]
        for token in shlex.split(self.cmd):
            cmd.append(token.format_map(fields))
        return cmd

    def __call__(self, src: Path, tgt: Path) -> None:
        """Convert src to tgt, replacing tgt if it exists

        Raises:
            OSError: The encoder could not be started or tgt not written.
            subprocess.CalledProcessError: The encoder exited non-zero.
            subprocess.TimeoutExpired: The encoder ran longer than timeout.
        """
        with tempfile.TemporaryDirectory(prefix="media-conductor-") as tmpdir:
            tmptgt = Path(tmpdir) / tgt.name
            cmd = self.build(src, tmptgt)
            logger.debug("Conversion cmd: %s", cmd)
            subprocess.run(cmd, capture_output=True, check=True, timeout=self.timeout)
            shutil.move(str(tmptgt), str(tgt))


def describe_failure(e: BaseException) -> str:
    """One line summary of why a conversion failed"""
    if isinstance(e, subprocess.CalledProcessError):
        stderr = e.stderr or b""
        if isinstance(stderr, bytes):
            stderr = stderr.decode(errors="replace")
        lines = stderr.strip().splitlines()
        last = f": {lines[-1]}" if lines else ""
        return f"encoder exited with status {e.returncode}{last}"
    if isinstance(e, subprocess.TimeoutExpired):
        return f"encoder timed out after {e.timeout:g}s"
    return f"{e.__class__.__name__}: {e}"


@define
class ConversionWorker:
    encode: Callable[[Path, Path], None]

    def convert(self, task: Task) -> Outcome:
        """Convert one task, returning the Outcome rather than raising"""
        src, tgt = task.input_path, task.output_path
        logger.info("Converting %s", sp(src))
        try:
            # Only the destination directory is created, nothing else touched
            tgt.parent.mkdir(parents=True, exist_ok=True)
            self.encode(src, tgt)
        except Exception as e:
            logger.error("Conversion of %s failed", sp(src), exc_info=e)
            return Outcome.failure(task, describe_failure(e))
        logger.debug("Converted %s -> %s", sp(src), sp(tgt))
        return Outcome.success(task)
