# SPDX-License-Identifier: MIT

import os
import re
import subprocess
import tarfile

import zstandard

import pmt.util as _util
import pmt.vcs_utils as _vcs_utils
from pmt.exceptions import GenericError, VersionProbeError

# makepkg exits with this status if the package was already built.
MAKEPKG_ALREADY_BUILT = 13

_assignment_re = re.compile(r"^(pkgver|pkgrel|epoch)=(.*)$")
_pkgver_function_re = re.compile(r"^\s*pkgver\s*\(\s*\)", re.MULTILINE)


def _unquote(value):
    value = value.strip()
    if value[:1] in ("'", '"'):
        value = value[1:]
    if value[-1:] in ("'", '"'):
        value = value[:-1]
    return value


# Extracts [epoch:]pkgver-pkgrel from the top-level assignments of a PKGBUILD.
# Returns None if there is no pkgver.
def parse_pkgbuild_version(text):
    values = dict()
    for line in text.splitlines():
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        m = _assignment_re.match(line)
        if m is None or m.group(1) in values:
            continue
        values[m.group(1)] = _unquote(m.group(2))

    pkgver = values.get("pkgver")
    if not pkgver:
        return None
    version = pkgver
    if values.get("epoch"):
        version = values["epoch"] + ":" + version
    if values.get("pkgrel"):
        version += "-" + values["pkgrel"]
    return version


def read_pkgbuild_version(pkgbuild_path):
    try:
        with open(pkgbuild_path, "r") as f:
            return parse_pkgbuild_version(f.read())
    except FileNotFoundError:
        return None


def has_pkgver_function(text):
    return _pkgver_function_re.search(text) is not None


def is_artifact(fname):
    return ".pkg.tar" in fname and not fname.endswith(".sig")


# Reads the .PKGINFO of a zstd compressed package archive.
def read_pkginfo(path):
    info = dict()
    with open(path, "rb") as zpkg:
        dctx = zstandard.ZstdDecompressor()
        with dctx.stream_reader(zpkg) as reader:
            with tarfile.open(fileobj=reader, mode="r|") as tar:
                for ent in tar:
                    if ent.name != ".PKGINFO":
                        continue
                    with tar.extractfile(ent) as f:
                        for line in f.read().decode("utf-8").splitlines():
                            if line.startswith("#") or " = " not in line:
                                continue
                            key, value = line.split(" = ", 1)
                            info.setdefault(key, value)
                    return info
    return info


def _embedded_version_matches(path, name, version):
    if not path.endswith(".zst"):
        return True
    try:
        info = read_pkginfo(path)
    except (OSError, tarfile.TarError, zstandard.ZstdError):
        return False
    return info.get("pkgname") == name and info.get("pkgver") == version


# Finds an artifact of package `name` at `version` in a build directory.
def find_artifact(pkg_dir, name, version, *, verify=False):
    prefix = "{}-{}-".format(name, version)
    for fname in sorted(os.listdir(pkg_dir)):
        if not fname.startswith(prefix) or not is_artifact(fname):
            continue
        path = os.path.join(pkg_dir, fname)
        if verify and not _embedded_version_matches(path, name, version):
            continue
        return path
    return None


def remove_artifacts(pkg_dir):
    for fname in os.listdir(pkg_dir):
        if is_artifact(fname):
            _util.try_unlink(os.path.join(pkg_dir, fname))


def _packagelist(pkg_dir, name):
    cmd = _vcs_utils.user_prefix() + ["makepkg", "--packagelist"]
    try:
        out = subprocess.check_output(cmd, cwd=pkg_dir, stderr=subprocess.DEVNULL, text=True)
    except (OSError, subprocess.CalledProcessError):
        return None
    for path in out.splitlines():
        path = path.strip()
        if os.path.basename(path).startswith(name + "-") and os.path.exists(path):
            return path
    return None


def fetch_recipe_text(cfg, build_unit):
    pkg_dir = _vcs_utils.update_checkout(cfg, build_unit, None)
    try:
        with open(os.path.join(pkg_dir, "PKGBUILD"), "r") as f:
            return f.read()
    except FileNotFoundError:
        raise GenericError("PKGBUILD not found for: {}".format(build_unit))


# Builds package `name` from the recipe of `build_unit` and returns the artifact path.
# An artifact that matches the version declared by the recipe is reused.
def build_package(cfg, name, build_unit, log_file):
    prefix = _vcs_utils.user_prefix(strict=True)

    _vcs_utils.log_msg(log_file, "Preparing build directory...")
    pkg_dir = _vcs_utils.update_checkout(cfg, build_unit, log_file)
    pkgbuild_path = os.path.join(pkg_dir, "PKGBUILD")
    if not os.path.exists(pkgbuild_path):
        raise GenericError("PKGBUILD not found for: {}".format(name))

    version = read_pkgbuild_version(pkgbuild_path)
    if version:
        cached = find_artifact(pkg_dir, name, version, verify=True)
        if cached is not None:
            _vcs_utils.log_msg(log_file, "Using cached build: " + os.path.basename(cached))
            return cached

    remove_artifacts(pkg_dir)

    _vcs_utils.log_msg(log_file, "Running makepkg -sf --nocheck --noconfirm ...")
    args = prefix + [
        "env",
        "PKGDEST=" + pkg_dir,
        "MAKEFLAGS=-j{}".format(_util.get_concurrency()),
        "makepkg",
        "-sf",
        "--nocheck",
        "--noconfirm",
    ]
    if _vcs_utils.run_logged(args, log_file, cwd=pkg_dir) != 0:
        raise GenericError("makepkg failed for: {}".format(name))

    _vcs_utils.log_msg(log_file, "Locating built package...")
    # pkgver() may have bumped the version during the build.
    version = read_pkgbuild_version(pkgbuild_path)
    if version:
        path = find_artifact(pkg_dir, name, version)
        if path is not None:
            return path
    for fname in sorted(os.listdir(pkg_dir)):
        if fname.startswith(name + "-") and is_artifact(fname):
            return os.path.join(pkg_dir, fname)
    path = _packagelist(pkg_dir, name)
    if path is not None:
        return path
    raise GenericError("Built package not found for: {}".format(name))


# Determines the version a VCS package would build at without building it.
def probe_version(cfg, name, build_unit, log_file, *, timeout=None):
    try:
        pkg_dir = _vcs_utils.update_checkout(cfg, build_unit, log_file, reset=True)
    except GenericError as e:
        raise VersionProbeError(name, str(e)) from e

    pkgbuild_path = os.path.join(pkg_dir, "PKGBUILD")
    try:
        with open(pkgbuild_path, "r") as f:
            text = f.read()
    except FileNotFoundError:
        raise VersionProbeError(name, "no PKGBUILD found for {}".format(build_unit))

    if not has_pkgver_function(text):
        _vcs_utils.log_msg(
            log_file, "{}: no pkgver() function, using static version".format(build_unit)
        )
        version = parse_pkgbuild_version(text)
        if not version:
            raise VersionProbeError(name, "PKGBUILD declares no pkgver")
        return version

    _vcs_utils.log_msg(
        log_file,
        "Running makepkg --nobuild for {} (fetching VCS sources)...".format(build_unit),
    )
    args = _vcs_utils.user_prefix() + ["makepkg", "--nobuild", "--nocheck", "-f"]
    rc = _vcs_utils.run_logged(args, log_file, cwd=pkg_dir, timeout=timeout)
    if rc is None or rc not in (0, MAKEPKG_ALREADY_BUILT):
        raise VersionProbeError(name, "makepkg --nobuild failed (exit {})".format(rc))

    version = read_pkgbuild_version(pkgbuild_path)
    if not version:
        raise VersionProbeError(name, "PKGBUILD declares no pkgver")
    _vcs_utils.log_msg(log_file, "{}: real VCS version is {}".format(build_unit, version))
    return version
