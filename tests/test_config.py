"""Tests for reading the build metadata embedded in an image."""
from __future__ import annotations

import sys
from pathlib import Path

import pytest

_REPO = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(_REPO / "tools"))

from cpio_helper import sample_members, write_image  # noqa: E402
from initramfs_codec import CompressionCodec  # noqa: E402
from initramfs_config import (  # noqa: E402
    dump_buildconfig,
    find_kernel_version,
    parse_config,
    read_config,
    read_version,
)
from initramfs_errors import ConfigNotFoundError, ConfigParseError  # noqa: E402


def test_quoted_lists_are_word_split():
    values = parse_config('MODULES="foo bar"\nHOOKS="base udev  autodetect"\n')
    assert values == {"MODULES": ["foo", "bar"], "HOOKS": ["base", "udev", "autodetect"]}


def test_array_and_bare_forms():
    values = parse_config("MODULES=(ext4 'vfat' \"nvme\")\nLATEHOOKS=usr\n")
    assert values["MODULES"] == ["ext4", "vfat", "nvme"]
    assert values["LATEHOOKS"] == ["usr"]


def test_unrecognized_keys_and_noise_are_ignored():
    text = "\n".join([
        "# generated by mkinitcpio",
        "",
        "COMPRESSION=zstd",
        "echo hello",
        "run_hook() { :; }",
        'export EARLYHOOKS="udev"',
        "CLEANUPHOOKS=''",
    ])
    assert parse_config(text) == {"EARLYHOOKS": ["udev"], "CLEANUPHOOKS": []}


def test_hook_order_is_preserved():
    values = parse_config('HOOKS="zz base aa udev"\n')
    assert values["HOOKS"] == ["zz", "base", "aa", "udev"]


def test_reassignment_and_append():
    values = parse_config('MODULES="a"\nMODULES="b c"\nMODULES+=" d"\n')
    assert values["MODULES"] == ["b", "c", "d"]


def test_trailing_comment_and_second_command():
    values = parse_config('HOOKS="base udev" # comment\nMODULES="foo"; MODULES="evil"\n')
    assert values["HOOKS"] == ["base", "udev"]
    assert values["MODULES"] == ["foo"]


def test_shell_code_is_never_executed(tmp_path: Path):
    marker = tmp_path / "pwned"
    text = (
        f'MODULES="$(touch {marker})"\n'
        f"touch {marker}\n"
        f"HOOKS=`touch {marker}`\n"
    )
    parse_config(text)
    assert not marker.exists()


def test_unbalanced_quote_is_a_parse_error():
    with pytest.raises(ConfigParseError, match="line 2"):
        parse_config('HOOKS="base"\nMODULES="foo\n')


def test_read_config_missing(tmp_path: Path):
    with pytest.raises(ConfigNotFoundError):
        read_config(str(tmp_path))


def test_read_config_from_tree(tmp_path: Path):
    (tmp_path / "config").write_text('MODULES="foo bar"\n')
    assert read_config(str(tmp_path)) == {"MODULES": ["foo", "bar"]}


def test_read_version(tmp_path: Path):
    assert read_version(str(tmp_path)) is None
    (tmp_path / "VERSION").write_text("38.1\nignored\n")
    assert read_version(str(tmp_path)) == "38.1"
    (tmp_path / "VERSION").write_text("\n")
    assert read_version(str(tmp_path)) is None


def test_kernel_version_single_directory(tmp_path: Path):
    (tmp_path / "usr/lib/modules/6.9.1-arch1-1/kernel").mkdir(parents=True)
    assert find_kernel_version(str(tmp_path)) == "6.9.1-arch1-1"


@pytest.mark.parametrize("kernels", [[], ["6.1.0", "6.9.1"]], ids=["none", "several"])
def test_kernel_version_ambiguous(tmp_path: Path, kernels: list[str]):
    moddir = tmp_path / "usr/lib/modules"
    moddir.mkdir(parents=True)
    for kver in kernels:
        (moddir / kver).mkdir()
    assert find_kernel_version(str(tmp_path)) == "unknown"


def test_kernel_version_without_module_tree(tmp_path: Path):
    assert find_kernel_version(str(tmp_path)) == "unknown"


def test_kernel_version_pre_usrmerge_layout(tmp_path: Path):
    (tmp_path / "lib/modules/4.19.0").mkdir(parents=True)
    assert find_kernel_version(str(tmp_path)) == "4.19.0"


def test_dump_buildconfig(tmp_path: Path, cpio_tool: str):
    members = sample_members()
    members["buildconfig"] = "HOOKS=(base udev)\n"
    image = write_image(tmp_path / "initramfs.img", members, "gzip")
    assert dump_buildconfig(str(image), CompressionCodec.GZIP) == b"HOOKS=(base udev)\n"


def test_dump_buildconfig_missing_suggests_old_builder(tmp_path: Path, cpio_tool: str):
    image = write_image(tmp_path / "initramfs.img", sample_members(), "none")
    with pytest.raises(ConfigNotFoundError, match="older version"):
        dump_buildconfig(str(image), CompressionCodec.NONE)


def test_dump_buildconfig_empty_member(tmp_path: Path, cpio_tool: str):
    members = sample_members()
    members["buildconfig"] = ""
    image = write_image(tmp_path / "initramfs.img", members, "none")
    assert dump_buildconfig(str(image), CompressionCodec.NONE) == b""
