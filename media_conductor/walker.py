# SPDX-FileCopyrightText: 2022-present Matthew Swabey <matthew@swabey.org>
#
# SPDX-License-Identifier: AGPL-3.0-or-later

import os
from logging import getLogger
from pathlib import Path
from typing import Dict, Iterator, List, Set

from attrs import define, field

from .tasks import Task

logger = getLogger(__name__)


def sp(path: Path) -> str:
    """Shorten path to parent and filename"""
    path_list = str(path).split(os.sep)
    return "." + os.sep + os.sep.join(path_list[-2:])


class WalkerException(Exception):
    pass


@define
class TaskSource:
    """Finds the files to convert below src_dir and maps each one to the
    same relative location below tgt_dir with the output suffix."""

    src_dir: Path = field(converter=Path)
    tgt_dir: Path = field(converter=Path)
    input_suffixes: Set[str] = field(
        converter=lambda suffixes: {s.lower() for s in suffixes}
    )
    output_suffix: str

    def _walk(self, directory: Path) -> Iterator[Path]:
        logger.debug("Walking '%s'", str(directory))
        for item in sorted(directory.iterdir()):
            if item.name[:1] == ".":
                logger.debug("  Ignoring %s", sp(item))
                continue
            if item.is_dir():
                # Links can point back up the tree
                if item.is_symlink():
                    logger.debug("  Ignoring linked dir %s", sp(item))
                    continue
                yield from self._walk(item)
            elif item.is_file() and item.suffix.lower() in self.input_suffixes:
                yield item

    def discover(self) -> List[Path]:
        """Return every matching source file, ordered by relative path

        Raises:
            WalkerException: src_dir is missing or not a directory.
        """
        if not self.src_dir.exists():
            raise WalkerException(
                f"Source directory {self.src_dir.absolute()} does not exist."
            )
        if not self.src_dir.is_dir():
            raise WalkerException(
                f"Source {self.src_dir.absolute()} is not a directory."
            )
        # Sort on the relative parts so a/b.flac stays next to a/c.flac
        return sorted(self._walk(self.src_dir), key=self.relative_path)

    def relative_path(self, src: Path) -> Path:
        return src.relative_to(self.src_dir)

    def output_path_for(self, src: Path) -> Path:
        tgt = self.tgt_dir / self.relative_path(src)
        return tgt.with_suffix(self.output_suffix)

    def tasks(self) -> List[Task]:
        """Number the discovered files and map each to its output

        Raises:
            WalkerException: src_dir is unusable, or two sources would be
                written to the same output file.
        """
        files = self.discover()
        claimed: Dict[Path, Path] = {}
        for src in files:
            tgt = self.output_path_for(src)
            if tgt in claimed:
                raise WalkerException(
                    f"{claimed[tgt]} and {src} would both be converted to {tgt}."
                )
            claimed[tgt] = src

        total = len(files)
        logger.info("Found %d file(s) to convert in %s", total, str(self.src_dir))
        return [
            Task(
                input_path=src,
                output_path=self.output_path_for(src),
                sequence_number=number,
                total_count=total,
            )
            for number, src in enumerate(files, start=1)
        ]
