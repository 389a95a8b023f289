"""Archive extraction safety checks."""

from __future__ import annotations

import io
import tarfile
import zipfile

import pytest

from APIDirectory.Registry.archives import extract_tar_safe, iter_zip_json
from APIDirectory.Registry.errors import DriverError


def _write_tar(path, members) -> None:
    with tarfile.open(path, mode="w:gz") as archive:
        for info, payload in members:
            archive.addfile(info, io.BytesIO(payload) if payload is not None else None)


def _file(name: str, payload: bytes = b"openapi: 3.0.0\n"):
    info = tarfile.TarInfo(name)
    info.size = len(payload)
    return info, payload


def test_strip_components(tmp_path) -> None:
    tar_path = tmp_path / "repo.tar.gz"
    _write_tar(tar_path, [_file("repo-main/specs/a.yaml"), _file("repo-main/top.yaml")])

    extracted = extract_tar_safe(tar_path, tmp_path / "out", strip=1)

    assert sorted(p.relative_to(tmp_path / "out").as_posix() for p in extracted) == ["specs/a.yaml", "top.yaml"]
    assert (tmp_path / "out" / "specs" / "a.yaml").read_bytes() == b"openapi: 3.0.0\n"


@pytest.mark.parametrize("name", ["../evil.yaml", "repo/../../evil.yaml", "/etc/evil.yaml"])
def test_unsafe_member_paths_are_rejected(tmp_path, name) -> None:
    tar_path = tmp_path / "evil.tar.gz"
    _write_tar(tar_path, [_file(name)])

    with pytest.raises(DriverError):
        extract_tar_safe(tar_path, tmp_path / "out")

    assert not (tmp_path / "evil.yaml").exists()


def test_links_are_skipped(tmp_path) -> None:
    link = tarfile.TarInfo("repo/link.yaml")
    link.type = tarfile.SYMTYPE
    link.linkname = "/etc/passwd"
    tar_path = tmp_path / "links.tar.gz"
    _write_tar(tar_path, [(link, None), _file("repo/real.yaml")])

    extracted = extract_tar_safe(tar_path, tmp_path / "out", strip=1)

    assert [p.name for p in extracted] == ["real.yaml"]
    assert not (tmp_path / "out" / "link.yaml").exists()


def test_missing_or_corrupt_tar(tmp_path) -> None:
    with pytest.raises(DriverError):
        extract_tar_safe(tmp_path / "missing.tar.gz", tmp_path / "out")
    corrupt = tmp_path / "corrupt.tar.gz"
    corrupt.write_bytes(b"not a tarball")
    with pytest.raises(DriverError):
        extract_tar_safe(corrupt, tmp_path / "out")


def test_compression_bombs_are_rejected(tmp_path) -> None:
    tar_path = tmp_path / "bomb.tar.gz"
    _write_tar(tar_path, [_file("repo/zeros.yaml", b"0" * 2_000_000)])

    with pytest.raises(DriverError):
        extract_tar_safe(tar_path, tmp_path / "out")


def test_zip_json_iteration_and_traversal(tmp_path) -> None:
    good = tmp_path / "good.zip"
    with zipfile.ZipFile(good, "w") as archive:
        archive.writestr("dir/", "")
        archive.writestr("dir/a.json", '{"swagger": "2.0"}')
        archive.writestr("b.yaml", "swagger: '2.0'")
    assert list(iter_zip_json(good)) == [("dir/a.json", '{"swagger": "2.0"}')]

    evil = tmp_path / "evil.zip"
    with zipfile.ZipFile(evil, "w") as archive:
        archive.writestr("../evil.json", "{}")
    with pytest.raises(DriverError):
        list(iter_zip_json(evil))

    broken = tmp_path / "broken.zip"
    broken.write_bytes(b"nope")
    with pytest.raises(DriverError):
        list(iter_zip_json(broken))
