# SPDX-FileCopyrightText: 2022-present Matthew Swabey <matthew@swabey.org>
#
# SPDX-License-Identifier: AGPL-3.0-or-later

import shutil
import subprocess
from logging import getLogger
from pathlib import Path
from typing import List, Optional, Tuple

import click

logger = getLogger(__name__)

# First package manager found on PATH wins
INSTALL_COMMANDS: Tuple[Tuple[str, List[str]], ...] = (
    ("apt-get", ["sudo", "apt-get", "install", "-y", "ffmpeg"]),
    ("dnf", ["sudo", "dnf", "install", "-y", "ffmpeg"]),
    ("pacman", ["sudo", "pacman", "-S", "--noconfirm", "ffmpeg"]),
    ("brew", ["brew", "install", "ffmpeg"]),
    ("winget", ["winget", "install", "--id", "Gyan.FFmpeg", "-e"]),
    ("choco", ["choco", "install", "ffmpeg", "-y"]),
)


class EncoderInstallException(Exception):
    pass


def resolve_encoder(exe: str) -> Optional[Path]:
    """Return the full path of exe if it is an executable file or on PATH"""
    found = shutil.which(exe)
    return Path(found) if found is not None else None


def encoder_available(exe: str) -> bool:
    return resolve_encoder(exe) is not None


def install_command() -> Optional[List[str]]:
    for manager, cmd in INSTALL_COMMANDS:
        if shutil.which(manager) is not None:
            return cmd
    return None


def install_encoder(assume_yes: bool = False) -> None:
    """Install ffmpeg with the host's package manager

    Raises:
        EncoderInstallException: No supported package manager, the operator
            declined or the install command failed.
    """
    cmd = install_command()
    if cmd is None:
        raise EncoderInstallException(
            "No supported package manager found, please install ffmpeg manually."
        )
    if not assume_yes and not click.confirm(
        f"ffmpeg was not found. Install it with '{' '.join(cmd)}'?", default=False
    ):
        raise EncoderInstallException("Installation of ffmpeg declined.")

    logger.info("Installing ffmpeg: %s", cmd)
    try:
        subprocess.run(cmd, check=True)
    except (OSError, subprocess.CalledProcessError) as e:
        raise EncoderInstallException(f"Installing ffmpeg failed: {e}") from e


def ensure_encoder(exe: str, assume_yes: bool = False) -> Path:
    """Return the path to the encoder, installing it first if needed

    Raises:
        EncoderInstallException: The encoder is missing and was not installed.
    """
    if not encoder_available(exe):
        install_encoder(assume_yes=assume_yes)

    path = resolve_encoder(exe)
    if path is None:
        raise EncoderInstallException(
            f"Encoder '{exe}' is still not available after installation."
        )
    logger.info("Using encoder %s", str(path))
    return path
