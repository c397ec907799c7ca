# SPDX-FileCopyrightText: 2022-present Matthew Swabey <matthew@swabey.org>
#
# SPDX-License-Identifier: AGPL-3.0-or-later

import logging
import sys
from pathlib import Path
from typing import NoReturn, Optional

import click
from attrs import evolve

from . import __version__
from .config import CONFIG_FILE_NAME, ConfigException, Settings
from .converter import ConversionWorker, EncoderCommand
from .encoder import EncoderInstallException, ensure_encoder
from .reporter import StatusReporter
from .scheduler import Scheduler, available_threads, capacity_for
from .walker import TaskSource, WalkerException

logging.basicConfig(
    format="%(asctime)s %(threadName)-10s %(levelname)-7s %(message)s",
    level=logging.WARNING,
)

EXIT_ENVIRONMENT = 1
EXIT_CONVERSION_FAILED = 2

LOG_LEVELS = (logging.WARNING, logging.INFO, logging.DEBUG)


def fail(message: str) -> NoReturn:
    click.echo(message, err=True)
    sys.exit(EXIT_ENVIRONMENT)


@click.command()
@click.option(
    "-c",
    "--config",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help=f"Specify a config file, defaults to ./{CONFIG_FILE_NAME} if present.",
)
@click.option(
    "-i",
    "--input",
    "input_dir",
    type=click.Path(path_type=Path),
    help="Directory of files to convert.",
)
@click.option(
    "-o",
    "--output",
    "output_dir",
    type=click.Path(file_okay=False, path_type=Path),
    help="Directory to write converted files to.",
)
@click.option(
    "-j",
    "--converters",
    type=click.IntRange(min=1),
    help="Number of concurrent encoders, defaults to 3/4 of the CPUs.",
)
@click.option(
    "-t",
    "--timeout",
    type=click.FloatRange(min=0, min_open=True),
    help="Give up on a file after this many seconds.",
)
@click.option(
    "--fail-on-error/--no-fail-on-error",
    default=None,
    help=f"Exit with status {EXIT_CONVERSION_FAILED} if any conversion failed.",
)
@click.option(
    "-y", "--yes", "assume_yes", is_flag=True, help="Install ffmpeg without asking."
)
@click.option("-v", "--verbose", count=True, help="Log more, repeat for debug.")
@click.version_option(version=__version__)
def main(
    config: Optional[Path],
    input_dir: Optional[Path],
    output_dir: Optional[Path],
    converters: Optional[int],
    timeout: Optional[float],
    fail_on_error: Optional[bool],
    assume_yes: bool,
    verbose: int,
) -> None:
    logging.getLogger().setLevel(LOG_LEVELS[min(verbose, len(LOG_LEVELS) - 1)])

    try:
        settings = Settings.from_toml(config)
    except (FileNotFoundError, PermissionError) as e:
        fail(f"Could not read configuration file: {e}")
    except ConfigException as e:
        fail(f"Invalid configuration: {e}")

    # Command line wins over the config file
    overrides = {
        "input_dir": input_dir,
        "output_dir": output_dir,
        "converters": converters,
        "timeout": timeout,
        "fail_on_error": fail_on_error,
    }
    settings = evolve(
        settings, **{k: v for k, v in overrides.items() if v is not None}
    )

    if not settings.input_dir.is_dir():
        fail(f"Input directory {settings.input_dir} was not found.")

    try:
        exe = ensure_encoder(settings.encoder_exe, assume_yes=assume_yes)
    except EncoderInstallException as e:
        fail(f"Encoder unavailable: {e}")

    source = TaskSource(
        src_dir=settings.input_dir,
        tgt_dir=settings.output_dir,
        input_suffixes=settings.input_suffixes,
        output_suffix=settings.output_suffix,
    )
    try:
        tasks = source.tasks()
    except WalkerException as e:
        fail(str(e))
    if not tasks:
        click.echo(f"No input files found in {settings.input_dir}.")
        return

    max_concurrent = settings.converters or capacity_for(available_threads())
    scheduler = Scheduler(max_concurrent)
    worker = ConversionWorker(EncoderCommand.from_settings(settings, exe))
    reporter = StatusReporter(src_dir=settings.input_dir)

    reporter.start(len(tasks), scheduler.max_concurrent)
    # Ctrl-C unwinds the generator, which waits for running encoders to stop
    for outcome in scheduler.run(tasks, worker.convert):
        reporter.report(outcome)
    reporter.finish()

    if settings.fail_on_error and reporter.any_failed:
        sys.exit(EXIT_CONVERSION_FAILED)
