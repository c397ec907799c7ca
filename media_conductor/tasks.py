# SPDX-FileCopyrightText: 2022-present Matthew Swabey <matthew@swabey.org>
#
# SPDX-License-Identifier: AGPL-3.0-or-later

from enum import Enum
from pathlib import Path

from attrs import frozen


class Status(Enum):
    SUCCESS = "ok"
    FAILURE = "error"


@frozen
class Task:
    """One source file and where its conversion should be written.

    sequence_number is 1-based in discovery order and is only used to label
    progress, never to order work.
    """

    input_path: Path
    output_path: Path
    sequence_number: int
    total_count: int


@frozen
class Outcome:
    task: Task
    status: Status
    detail: str = ""

    @property
    def ok(self) -> bool:
        return self.status is Status.SUCCESS

    @classmethod
    def success(cls, task: Task) -> "Outcome":
        return cls(task=task, status=Status.SUCCESS)

    @classmethod
    def failure(cls, task: Task, detail: str) -> "Outcome":
        return cls(task=task, status=Status.FAILURE, detail=detail)
