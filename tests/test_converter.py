# SPDX-FileCopyrightText: 2022-present Matthew Swabey <matthew@swabey.org>
#
# SPDX-License-Identifier: AGPL-3.0-or-later

import subprocess
import sys
from pathlib import Path

import pytest

from media_conductor.config import Settings
from media_conductor.converter import (
    ConversionWorker,
    EncoderCommand,
    describe_failure,
)
from media_conductor.tasks import Status, Task

COPY_CMD = (
    '-c "import shutil, sys; shutil.copyfile(sys.argv[1], sys.argv[2])"'
    " {input} {output}"
)


def make_task(src: Path, tgt: Path) -> Task:
    return Task(input_path=src, output_path=tgt, sequence_number=1, total_count=1)


@pytest.fixture
def source(tmp_path):
    src = tmp_path / "in" / "album" / "track.flac"
    src.parent.mkdir(parents=True)
    src.write_bytes(b"fLaC")
    return src


def test_worker_creates_destination_directory(tmp_path, source):
    tgt = tmp_path / "out" / "album" / "track.opus"
    calls = []

    def encode(src, dst):
        calls.append((src, dst))
        dst.write_bytes(src.read_bytes())

    outcome = ConversionWorker(encode).convert(make_task(source, tgt))

    assert outcome.ok
    assert outcome.detail == ""
    assert calls == [(source, tgt)]
    assert tgt.read_bytes() == b"fLaC"


def test_worker_existing_destination_directory(tmp_path, source):
    tgt = tmp_path / "out" / "track.opus"
    tgt.parent.mkdir()

    outcome = ConversionWorker(lambda src, dst: None).convert(make_task(source, tgt))

    assert outcome.ok


@pytest.mark.parametrize(
    "error, expected",
    [
        (subprocess.CalledProcessError(1, ["ffmpeg"], stderr=b"bad\nInvalid data"),
         "encoder exited with status 1: Invalid data"),
        (FileNotFoundError(2, "No such file or directory"), "FileNotFoundError"),
        (subprocess.TimeoutExpired(["ffmpeg"], 3), "timed out after 3s"),
        (ValueError("odd"), "ValueError: odd"),
    ],
)
def test_worker_turns_errors_into_failures(tmp_path, source, error, expected):
    def encode(src, dst):
        raise error

    outcome = ConversionWorker(encode).convert(
        make_task(source, tmp_path / "out" / "track.opus")
    )

    assert outcome.status is Status.FAILURE
    assert expected in outcome.detail


def test_worker_directory_failure_is_reported(tmp_path, source):
    blocker = tmp_path / "out"
    blocker.write_text("not a directory")

    outcome = ConversionWorker(lambda src, dst: None).convert(
        make_task(source, blocker / "track.opus")
    )

    assert outcome.status is Status.FAILURE
    assert blocker.read_text() == "not a directory"


def test_describe_failure_without_stderr():
    error = subprocess.CalledProcessError(255, ["ffmpeg"])
    assert describe_failure(error) == "encoder exited with status 255"


def test_build_fills_template():
    command = EncoderCommand(
        exe="/usr/bin/ffmpeg",
        cmd="-y -i {input} -b:a {bitrate} {output}",
        cmd_args={"bitrate": "96k"},
    )

    cmd = command.build(Path("in/a b.flac"), Path("out/a b.opus"))

    assert cmd == [
        str(Path("/usr/bin/ffmpeg")),
        "-y",
        "-i",
        str(Path("in/a b.flac")),
        "-b:a",
        "96k",
        str(Path("out/a b.opus")),
    ]


def test_from_settings():
    settings = Settings(timeout=12.5)
    command = EncoderCommand.from_settings(settings, Path("/opt/ffmpeg"))

    assert command.exe == Path("/opt/ffmpeg")
    assert command.cmd == settings.encoder_cmd
    assert command.cmd_args == {"bitrate": "128k"}
    assert command.timeout == 12.5


def test_command_writes_target(tmp_path, source):
    tgt = tmp_path / "track.opus"
    tgt.write_bytes(b"old")

    EncoderCommand(exe=sys.executable, cmd=COPY_CMD)(source, tgt)

    assert tgt.read_bytes() == b"fLaC"


def test_command_failure_leaves_no_output(tmp_path, source):
    tgt = tmp_path / "track.opus"
    cmd = (
        '-c "import sys; open(sys.argv[2], \'w\').write(\'partial\'); sys.exit(3)"'
        " {input} {output}"
    )

    with pytest.raises(subprocess.CalledProcessError) as excinfo:
        EncoderCommand(exe=sys.executable, cmd=cmd)(source, tgt)

    assert excinfo.value.returncode == 3
    assert not tgt.exists()


def test_command_timeout(tmp_path, source):
    cmd = '-c "import time; time.sleep(30)" {input} {output}'
    command = EncoderCommand(exe=sys.executable, cmd=cmd, timeout=0.5)

    with pytest.raises(subprocess.TimeoutExpired):
        command(source, tmp_path / "track.opus")


def test_missing_encoder(tmp_path, source):
    command = EncoderCommand(exe=tmp_path / "no-such-encoder", cmd=COPY_CMD)

    with pytest.raises(OSError):
        command(source, tmp_path / "track.opus")

    outcome = ConversionWorker(command).convert(
        make_task(source, tmp_path / "track.opus")
    )
    assert outcome.status is Status.FAILURE
