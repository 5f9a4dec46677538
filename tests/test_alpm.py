# SPDX-License-Identifier: MIT

import io
import tarfile

import pytest
import zstandard

from pmt.alpm import LocalDatabase, parse_desc, read_sync_db, repos_from_pacman_conf
from pmt.config import Config
from pmt.exceptions import LocalDatabaseError
from pmt.package import Provenance

PACMAN_CONF = """\
#
# /etc/pacman.conf
#
[options]
HoldPkg     = pacman glibc
Architecture = auto
Color
CheckSpace
SigLevel    = Required DatabaseOptional

[core]
Include = /etc/pacman.d/mirrorlist

[extra]
Include = /etc/pacman.d/mirrorlist
Include = /etc/pacman.d/mirrorlist-extra

[testing]
Server = https://example.org/$repo/os/$arch
"""


def desc(name, version, **sections):
    text = "%NAME%\n{}\n\n%VERSION%\n{}\n\n".format(name, version)
    for key, values in sections.items():
        text += "%{}%\n{}\n\n".format(key.upper(), "\n".join(values))
    return text


def make_tar(entries, mode="w"):
    buf = io.BytesIO()
    with tarfile.open(fileobj=buf, mode=mode) as tar:
        for name, text in entries.items():
            data = text.encode("utf-8")
            info = tarfile.TarInfo("{}/desc".format(name))
            info.size = len(data)
            tar.addfile(info, io.BytesIO(data))
    return buf.getvalue()


@pytest.fixture
def pacman_root(tmp_path):
    db_path = tmp_path / "db"
    local_dir = db_path / "local"
    for entry, text in {
        "bash-5.2.026-2": desc("bash", "5.2.026-2", provides=["sh"]),
        "glibc-2.39-1": desc("glibc", "2.39-1", provides=["libc.so=6-64"]),
        "yay-bin-12.3.5-1": desc("yay-bin", "12.3.5-1", base=["yay-bin"], provides=["yay"]),
        "jdk-bin-21-1": desc("jdk-bin", "21-1", provides=["java-runtime=21", "jre"]),
    }.items():
        (local_dir / entry).mkdir(parents=True)
        (local_dir / entry / "desc").write_text(text)
    (local_dir / "ALPM_DB_VERSION").write_text("9\n")

    sync_dir = db_path / "sync"
    sync_dir.mkdir()
    core = make_tar(
        {
            "bash-5.2.026-2": desc("bash", "5.2.026-2", provides=["sh"]),
            "glibc-2.39-1": desc("glibc", "2.39-1"),
        },
        mode="w:gz",
    )
    (sync_dir / "core.db").write_bytes(core)
    extra = make_tar(
        {
            "cmake-3.29.0-1": desc("cmake", "3.29.0-1", depends=["zlib"]),
            "openjdk-21-1": desc("jre-openjdk", "21.0.3-1", provides=["java-runtime=21"]),
        }
    )
    (sync_dir / "extra.db").write_bytes(zstandard.ZstdCompressor().compress(extra))

    conf = tmp_path / "pacman.conf"
    conf.write_text(PACMAN_CONF)
    return tmp_path


def make_db(root, **pacman):
    yml = {"pacman": dict(conf=str(root / "pacman.conf"), db_path=str(root / "db"), **pacman)}
    return LocalDatabase(Config(yml, home=str(root)), log_file=str(root / "build.log"))


def test_parse_desc():
    fields = parse_desc(desc("foo", "1.0-1", depends=["bar", "baz>=2"]))
    assert fields == {"NAME": ["foo"], "VERSION": ["1.0-1"], "DEPENDS": ["bar", "baz>=2"]}


def test_repos_from_pacman_conf(pacman_root):
    assert repos_from_pacman_conf(str(pacman_root / "pacman.conf")) == ["core", "extra", "testing"]


def test_missing_pacman_conf(tmp_path):
    with pytest.raises(LocalDatabaseError):
        repos_from_pacman_conf(str(tmp_path / "nonexistent.conf"))


def test_read_zstd_sync_db(pacman_root):
    pkgs = read_sync_db(str(pacman_root / "db" / "sync" / "extra.db"), "extra")
    assert sorted(pkgs) == ["cmake", "jre-openjdk"]
    assert pkgs["cmake"].depends == ["zlib"]
    assert pkgs["cmake"].provenance == Provenance.REPO
    assert pkgs["cmake"].repo == "extra"


def test_installed_packages(pacman_root):
    db = make_db(pacman_root)
    assert sorted(db.installed) == ["bash", "glibc", "jdk-bin", "yay-bin"]
    assert db.installed["yay-bin"].build_unit == "yay-bin"
    assert db.installed["bash"].provenance == Provenance.LOCAL


def test_is_satisfied(pacman_root):
    db = make_db(pacman_root)
    assert db.is_satisfied("bash")
    assert db.is_satisfied("bash>=5.0")
    assert db.is_satisfied("bash=5.2.026-2")
    assert not db.is_satisfied("bash>5.2.026")
    assert db.is_satisfied("sh")
    assert db.is_satisfied("libc.so=6-64")
    assert db.is_satisfied("java-runtime>=17")
    assert not db.is_satisfied("java-runtime>=22")
    # Unversioned provides cannot satisfy versioned dependencies.
    assert db.is_satisfied("yay")
    assert not db.is_satisfied("yay>=12")
    assert not db.is_satisfied("zsh")


def test_is_available_in_repos(pacman_root):
    db = make_db(pacman_root)
    assert db.is_available_in_repos("glibc")
    assert db.is_available_in_repos("cmake>=3.20")
    assert not db.is_available_in_repos("cmake>=4")
    assert db.is_available_in_repos("java-runtime=21")
    assert db.is_available_in_repos("sh")
    assert not db.is_available_in_repos("yay-bin")


def test_list_foreign_installed(pacman_root):
    db = make_db(pacman_root)
    assert sorted(pkg.name for pkg in db.list_foreign_installed()) == ["jdk-bin", "yay-bin"]


def test_compare_versions(pacman_root):
    db = make_db(pacman_root)
    assert db.compare_versions("1.1-1", "1.0-1") > 0
    assert db.compare_versions("1.0-1", "1.0-1") == 0
    assert db.compare_versions("1:1.0-1", "2.0-1") > 0


def test_reload_sees_new_packages(pacman_root):
    db = make_db(pacman_root)
    assert not db.is_satisfied("paru")

    entry = pacman_root / "db" / "local" / "paru-2.0.3-1"
    entry.mkdir()
    (entry / "desc").write_text(desc("paru", "2.0.3-1"))
    assert not db.is_satisfied("paru")

    db.reload()
    assert db.is_satisfied("paru>=2")


def test_install_batch(pacman_root):
    db = make_db(pacman_root, command=["true"])
    db.install_batch(["cmake", "ninja"], as_dependency=True)

    with open(str(pacman_root / "build.log")) as f:
        assert f.read().startswith("$ true -S --needed --noconfirm --asdeps cmake ninja\n")


def test_install_artifact(pacman_root):
    db = make_db(pacman_root, command=["true"])
    db.install_artifact("/cache/foo/foo-1.0-1-x86_64.pkg.tar.zst", allow_overwrite=True)

    with open(str(pacman_root / "build.log")) as f:
        assert f.read().startswith(
            "$ true -U --noconfirm --overwrite * /cache/foo/foo-1.0-1-x86_64.pkg.tar.zst\n"
        )


def test_failed_pacman_run(pacman_root):
    db = make_db(pacman_root, command=["false"])
    with pytest.raises(LocalDatabaseError):
        db.install_batch(["cmake"])
    with pytest.raises(LocalDatabaseError):
        db.install_artifact("/cache/foo/foo-1.0-1-x86_64.pkg.tar.zst")
