# SPDX-FileCopyrightText: 2022-present Matthew Swabey <matthew@swabey.org>
#
# SPDX-License-Identifier: AGPL-3.0-or-later

from pathlib import Path

import click
from attrs import define, field

from .tasks import Outcome


@define
class StatusReporter:
    src_dir: Path = field(converter=Path)
    succeeded: int = field(default=0, init=False)
    failed: int = field(default=0, init=False)

    @property
    def any_failed(self) -> bool:
        return self.failed > 0

    def start(self, total: int, max_concurrent: int) -> None:
        click.echo(
            f"Converting {total} file(s) with up to {max_concurrent}"
            " concurrent encoder(s)."
        )

    def label(self, outcome: Outcome) -> str:
        task = outcome.task
        try:
            name = task.input_path.relative_to(self.src_dir)
        except ValueError:
            name = task.input_path
        return f"[{task.sequence_number}/{task.total_count}] {name}"

    def report(self, outcome: Outcome) -> None:
        if outcome.ok:
            self.succeeded += 1
        else:
            self.failed += 1
        click.echo(f"{self.label(outcome)} {outcome.status.value}")

    def finish(self) -> None:
        click.echo(f"Done. {self.succeeded} converted, {self.failed} failed.")
