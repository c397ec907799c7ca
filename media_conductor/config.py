# SPDX-FileCopyrightText: 2022-present Matthew Swabey <matthew@swabey.org>
#
# SPDX-License-Identifier: AGPL-3.0-or-later

import re
import shlex
from collections.abc import Iterable
from logging import getLogger
from pathlib import Path
from typing import Any, Dict, Optional, Set, Union

import tomli
from attrs import Factory, define

logger = getLogger(__name__)

CONFIG_FILE_NAME = "media-conductor.toml"

DEFAULT_INPUT_DIR = "input"
DEFAULT_OUTPUT_DIR = "output"
DEFAULT_INPUT_SUFFIXES = (".flac", ".wav")
DEFAULT_OUTPUT_SUFFIX = ".opus"
DEFAULT_ENCODER_EXE = "ffmpeg"
# -y overwrites the target, -vn drops cover art and any other non-audio stream
DEFAULT_ENCODER_CMD = (
    "-nostdin -hide_banner -loglevel error -y -i {input}"
    " -vn -c:a libopus -b:a {bitrate} {output}"
)
DEFAULT_ENCODER_CMD_ARGS = {"bitrate": "128k"}


def validate_pos_int(var_: Any) -> int:
    """Convert var into an int and validate it is positive"""
    if isinstance(var_, bool):
        raise ValueError(f"{var_} is not a positive integer.")
    var_ = int(var_)  # Raises ValueError if not able to convert
    if var_ < 1:
        raise ValueError(f"{var_} is not a positive integer.")
    return var_


def validate_pos_number(var_: Any) -> float:
    """Convert var into a float and validate it is positive"""
    if isinstance(var_, bool):
        raise ValueError(f"{var_} is not a positive number.")
    var_ = float(var_)
    if not var_ > 0:
        raise ValueError(f"{var_} is not a positive number.")
    return var_


def validate_suffixes(suffixes: Iterable[Any]) -> Set[str]:
    if isinstance(suffixes, str):
        raise ValueError("File suffixes must be given as a list")
    pattern = re.compile(r"^\.[\w]+$")
    for suffix in suffixes:
        if not isinstance(suffix, str) or not pattern.match(suffix):
            raise ValueError("File suffixes must be of the form .a-z0-9")
    return {suffix.lower() for suffix in suffixes}


class ConfigException(Exception):
    pass


@define
class Settings:
    input_dir: Path = Path(DEFAULT_INPUT_DIR)
    output_dir: Path = Path(DEFAULT_OUTPUT_DIR)
    input_suffixes: Set[str] = Factory(lambda: set(DEFAULT_INPUT_SUFFIXES))
    output_suffix: str = DEFAULT_OUTPUT_SUFFIX
    encoder_exe: str = DEFAULT_ENCODER_EXE
    encoder_cmd: str = DEFAULT_ENCODER_CMD
    encoder_cmd_args: Dict[str, Union[int, str]] = Factory(
        lambda: dict(DEFAULT_ENCODER_CMD_ARGS)
    )
    converters: Optional[int] = None  # None means size from the CPU count
    timeout: Optional[float] = None  # Seconds per file, None waits forever
    fail_on_error: bool = False

    @classmethod
    def from_toml(cls, config_path: Optional[Path] = None) -> "Settings":
        """Read the config file and build the settings from it

        Without an explicit config_path the default config file in the
        current directory is used if present, otherwise the built-in
        defaults are returned.

        Args:
            config_path: Path to the TOML config file.

        Raises:
            FileNotFoundError: Config file not found at the config_path.
            PermissionError: File at config_path is not readable.
            ConfigException: Config file is not valid TOML or not correct
        """
        if config_path is not None:
            config_path = Path(config_path).expanduser()
        elif Path(CONFIG_FILE_NAME).is_file():
            config_path = Path(CONFIG_FILE_NAME)
        else:
            logger.debug("No %s found, using defaults", CONFIG_FILE_NAME)
            return cls()

        with open(config_path, "rb") as f:  # tomli requires "rb"
            try:
                toml_dict = tomli.load(f)
            except tomli.TOMLDecodeError as e:
                raise ConfigException(
                    f"Config '{config_path}' does not contain valid TOML."
                ) from e

        logger.debug("Config: %s", str(toml_dict))
        return cls.from_dict(toml_dict)

    @classmethod
    def from_dict(cls, toml_dict: Dict[str, Any]) -> "Settings":
        defaults = cls()

        # Check/sanitize source and target, existence is checked at run time
        input_dir = toml_dict.get("input_dir", DEFAULT_INPUT_DIR)
        if not isinstance(input_dir, str) or not input_dir:
            raise ConfigException("input_dir=<dir> must be a directory path.")
        output_dir = toml_dict.get("output_dir", DEFAULT_OUTPUT_DIR)
        if not isinstance(output_dir, str) or not output_dir:
            raise ConfigException("output_dir=<dir> must be a directory path.")

        try:
            converters = toml_dict.get("converters")
            converters = (
                validate_pos_int(converters) if converters is not None else None
            )
        except (TypeError, ValueError) as e:
            raise ConfigException(
                "If 'converters' is set it must be a positive integer."
            ) from e

        try:
            timeout = toml_dict.get("timeout")
            timeout = validate_pos_number(timeout) if timeout is not None else None
        except (TypeError, ValueError) as e:
            raise ConfigException(
                "If 'timeout' is set it must be a positive number of seconds."
            ) from e

        fail_on_error = toml_dict.get("fail_on_error", False)
        if not isinstance(fail_on_error, bool):
            raise ConfigException(
                "If 'fail_on_error' is set it must be true or false."
            )

        converter = toml_dict.get("converter", {})
        if not isinstance(converter, dict):
            raise ConfigException("[converter] must be a table.")

        # Check converter inputs
        try:
            input_suffixes = (
                validate_suffixes(converter["inputs"])
                if "inputs" in converter
                else defaults.input_suffixes
            )
        except (TypeError, ValueError) as e:
            raise ConfigException(
                'converter.inputs must be a list of file suffixes e.g. ".flac".'
            ) from e

        # Check converter output
        try:
            output_suffix = (
                validate_suffixes([converter["output"]]).pop()
                if "output" in converter
                else defaults.output_suffix
            )
        except (TypeError, ValueError) as e:
            raise ConfigException(
                'converter.output must be a single file suffix e.g. ".opus".'
            ) from e

        # Check for converter program, resolved on PATH at run time
        encoder_exe = converter.get("exe", defaults.encoder_exe)
        if not isinstance(encoder_exe, str) or not encoder_exe:
            raise ConfigException(
                "converter.exe=<path to converter> must be a program name or path."
            )

        # Check for converter command
        encoder_cmd = converter.get("cmd", defaults.encoder_cmd)
        if not isinstance(encoder_cmd, str):
            raise ConfigException("converter.cmd=<command> must be a string.")
        if "{input}" not in encoder_cmd or "{output}" not in encoder_cmd:
            raise ConfigException(
                "converter.cmd must contain both {input} and {output}."
            )

        # Check for converter command args
        encoder_cmd_args = converter.get("cmd_args", defaults.encoder_cmd_args)
        if not isinstance(encoder_cmd_args, dict) or not all(
            isinstance(v, (int, str)) and not isinstance(v, bool)
            for v in encoder_cmd_args.values()
        ):
            raise ConfigException(
                "[converter.cmd_args] must be a table of strings or integers."
            )

        # Check every placeholder in the command can be filled
        fields: Dict[str, Union[int, str]] = dict(encoder_cmd_args)
        fields.update(input="", output="")
        try:
            for token in shlex.split(encoder_cmd):
                token.format_map(fields)
        except (KeyError, ValueError, IndexError) as e:
            raise ConfigException(
                f"converter.cmd cannot be filled from converter.cmd_args: {e}"
            ) from e

        return cls(
            input_dir=Path(input_dir).expanduser(),
            output_dir=Path(output_dir).expanduser(),
            input_suffixes=input_suffixes,
            output_suffix=output_suffix,
            encoder_exe=encoder_exe,
            encoder_cmd=encoder_cmd,
            encoder_cmd_args=dict(encoder_cmd_args),
            converters=converters,
            timeout=timeout,
            fail_on_error=fail_on_error,
        )
