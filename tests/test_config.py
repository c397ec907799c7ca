# SPDX-FileCopyrightText: 2022-present Matthew Swabey <matthew@swabey.org>
#
# SPDX-License-Identifier: AGPL-3.0-or-later

from pathlib import Path

import pytest

from media_conductor.config import (
    CONFIG_FILE_NAME,
    DEFAULT_ENCODER_CMD,
    ConfigException,
    Settings,
    validate_pos_int,
    validate_pos_number,
    validate_suffixes,
)

FULL_CONFIG = """
input_dir = "flac"
output_dir = "~/opus"
converters = 3
timeout = 90
fail_on_error = true

[converter]
inputs = [".flac", ".WAV"]
output = ".ogg"
exe = "/opt/bin/ffmpeg"
cmd = "-y -i {input} -c:a libvorbis -q:a {quality} {output}"

[converter.cmd_args]
quality = 6
"""


def test_defaults_without_config_file(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)

    settings = Settings.from_toml()

    assert settings == Settings()
    assert settings.input_dir == Path("input")
    assert settings.output_dir == Path("output")
    assert settings.input_suffixes == {".flac", ".wav"}
    assert settings.output_suffix == ".opus"
    assert settings.encoder_cmd == DEFAULT_ENCODER_CMD
    assert settings.converters is None
    assert settings.timeout is None
    assert settings.fail_on_error is False


def test_default_config_file_in_working_directory(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    (tmp_path / CONFIG_FILE_NAME).write_text("converters = 5\n")

    settings = Settings.from_toml()

    assert settings.converters == 5
    assert settings.encoder_exe == "ffmpeg"


def test_full_config(tmp_path):
    config = tmp_path / "custom.toml"
    config.write_text(FULL_CONFIG)

    settings = Settings.from_toml(config)

    assert settings.input_dir == Path("flac")
    assert settings.output_dir == Path("~/opus").expanduser()
    assert settings.converters == 3
    assert settings.timeout == 90.0
    assert settings.fail_on_error is True
    assert settings.input_suffixes == {".flac", ".wav"}
    assert settings.output_suffix == ".ogg"
    assert settings.encoder_exe == "/opt/bin/ffmpeg"
    assert settings.encoder_cmd_args == {"quality": 6}


def test_missing_explicit_config(tmp_path):
    with pytest.raises(FileNotFoundError):
        Settings.from_toml(tmp_path / "missing.toml")


def test_invalid_toml(tmp_path):
    config = tmp_path / "bad.toml"
    config.write_text("converters = = 2\n")

    with pytest.raises(ConfigException, match="valid TOML"):
        Settings.from_toml(config)


@pytest.mark.parametrize(
    "toml_dict, match",
    [
        ({"converters": 0}, "converters"),
        ({"converters": "many"}, "converters"),
        ({"converters": True}, "converters"),
        ({"timeout": -1}, "timeout"),
        ({"timeout": "soon"}, "timeout"),
        ({"fail_on_error": "yes"}, "fail_on_error"),
        ({"input_dir": 3}, "input_dir"),
        ({"output_dir": ""}, "output_dir"),
        ({"converter": "ffmpeg"}, r"\[converter\]"),
        ({"converter": {"inputs": "flac"}}, "converter.inputs"),
        ({"converter": {"inputs": ["flac"]}}, "converter.inputs"),
        ({"converter": {"output": ".o p u s"}}, "converter.output"),
        ({"converter": {"exe": ""}}, "converter.exe"),
        ({"converter": {"cmd": "-i {input}"}}, "converter.cmd"),
        ({"converter": {"cmd": "-i {input} -q {q} {output}"}}, "cmd_args"),
        ({"converter": {"cmd_args": {"bitrate": [1]}}}, "cmd_args"),
    ],
)
def test_invalid_values(toml_dict, match):
    with pytest.raises(ConfigException, match=match):
        Settings.from_dict(toml_dict)


def test_validate_pos_int():
    assert validate_pos_int("4") == 4
    with pytest.raises(ValueError):
        validate_pos_int(0)


def test_validate_pos_number():
    assert validate_pos_number(0.5) == 0.5
    with pytest.raises(ValueError):
        validate_pos_number(0)


def test_validate_suffixes():
    assert validate_suffixes([".FLAC", ".wav"]) == {".flac", ".wav"}
    with pytest.raises(ValueError):
        validate_suffixes(["wav"])
