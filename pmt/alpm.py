# SPDX-License-Identifier: MIT

import configparser
import os
import subprocess
import tarfile

import zstandard

import pmt.util as _util
from pmt.exceptions import LocalDatabaseError
from pmt.package import Dependency, PackageDescriptor, Provenance
from pmt.vercmp import satisfies, vercmp

ZSTD_MAGIC = b"\x28\xb5\x2f\xfd"


# Parses the %SECTION% based format of pacman's desc files.
def parse_desc(text):
    fields = dict()
    section = None
    for line in text.splitlines():
        line = line.strip()
        if not line:
            section = None
            continue
        if line.startswith("%") and line.endswith("%") and len(line) > 2:
            section = line[1:-1]
            fields.setdefault(section, [])
            continue
        if section is not None:
            fields[section].append(line)
    return fields


def descriptor_from_desc(fields, *, provenance, repo=None):
    def single(key, default=None):
        values = fields.get(key)
        if not values:
            return default
        return values[0]

    name = single("NAME")
    version = single("VERSION")
    if name is None or version is None:
        return None
    return PackageDescriptor(
        name,
        version,
        pkgbase=single("BASE"),
        depends=fields.get("DEPENDS", []),
        makedepends=fields.get("MAKEDEPENDS", []),
        optdepends=fields.get("OPTDEPENDS", []),
        provides=fields.get("PROVIDES", []),
        conflicts=fields.get("CONFLICTS", []),
        provenance=provenance,
        repo=repo,
        description=single("DESC", ""),
        url=single("URL", ""),
        licenses=fields.get("LICENSE", []),
    )


def read_local_db(db_path):
    pkgs = dict()
    local_dir = os.path.join(db_path, "local")
    try:
        entries = sorted(os.listdir(local_dir))
    except FileNotFoundError:
        return pkgs
    for entry in entries:
        desc_path = os.path.join(local_dir, entry, "desc")
        try:
            with open(desc_path, "r", encoding="utf-8", errors="replace") as f:
                fields = parse_desc(f.read())
        except (FileNotFoundError, NotADirectoryError):
            continue
        pkg = descriptor_from_desc(fields, provenance=Provenance.LOCAL, repo="local")
        if pkg is not None:
            pkgs[pkg.name] = pkg
    return pkgs


def _read_db_members(tar, repo, pkgs):
    for ent in tar:
        if not ent.isfile() or not ent.name.endswith("/desc"):
            continue
        with tar.extractfile(ent) as f:
            fields = parse_desc(f.read().decode("utf-8", errors="replace"))
        pkg = descriptor_from_desc(fields, provenance=Provenance.REPO, repo=repo)
        if pkg is not None:
            pkgs[pkg.name] = pkg


# Sync databases are tar archives; recent pacman versions may compress them with zstd.
def read_sync_db(path, repo):
    pkgs = dict()
    with open(path, "rb") as f:
        magic = f.read(4)
    if magic == ZSTD_MAGIC:
        with open(path, "rb") as zdb:
            dctx = zstandard.ZstdDecompressor()
            with dctx.stream_reader(zdb) as reader:
                with tarfile.open(fileobj=reader, mode="r|") as tar:
                    _read_db_members(tar, repo, pkgs)
    else:
        with tarfile.open(path, mode="r:*") as tar:
            _read_db_members(tar, repo, pkgs)
    return pkgs


def repos_from_pacman_conf(path):
    parser = configparser.ConfigParser(
        strict=False, allow_no_value=True, interpolation=None, delimiters=("=",)
    )
    try:
        with open(path, "r") as f:
            parser.read_file(f)
    except FileNotFoundError:
        raise LocalDatabaseError("pacman configuration {} not found".format(path))
    except configparser.Error as e:
        raise LocalDatabaseError("Failed to parse {}: {}".format(path, e)) from e
    return [section for section in parser.sections() if section != "options"]


# Follows alpm_find_satisfier(): match by name, then by provides.
def find_satisfier(pkgs, depstring):
    dep = Dependency.parse(depstring)

    pkg = pkgs.get(dep.name)
    if pkg is not None and satisfies(pkg.version, dep.op, dep.version):
        return pkg

    for pkg in pkgs.values():
        for prov in pkg.provides:
            prov_dep = Dependency.parse(prov)
            if prov_dep.name != dep.name:
                continue
            if dep.op is None:
                return pkg
            # Unversioned provides cannot satisfy versioned dependencies.
            if prov_dep.op != "=":
                continue
            if satisfies(prov_dep.version, dep.op, dep.version):
                return pkg
    return None


class LocalDatabase:
    def __init__(self, cfg, *, log_file=None):
        self._cfg = cfg
        self._log_file = log_file
        self._installed = None
        self._repos = None

    def reload(self):
        db_path = self._cfg.pacman_db_path
        installed = read_local_db(db_path)
        repos = []
        for repo in repos_from_pacman_conf(self._cfg.pacman_conf):
            db_file = os.path.join(db_path, "sync", repo + ".db")
            try:
                repos.append((repo, read_sync_db(db_file, repo)))
            except FileNotFoundError:
                _util.log_warn("Sync database {} is missing; run pacman -Sy".format(db_file))
            except (tarfile.TarError, zstandard.ZstdError) as e:
                raise LocalDatabaseError("Failed to read {}: {}".format(db_file, e)) from e
        self._installed = installed
        self._repos = repos

    def _ensure_loaded(self):
        if self._installed is None:
            self.reload()

    @property
    def installed(self):
        self._ensure_loaded()
        return self._installed

    def is_satisfied(self, depstring):
        self._ensure_loaded()
        return find_satisfier(self._installed, depstring) is not None

    def is_available_in_repos(self, depstring):
        self._ensure_loaded()
        return any(find_satisfier(pkgs, depstring) is not None for _, pkgs in self._repos)

    def compare_versions(self, a, b):
        return vercmp(a, b)

    def list_foreign_installed(self):
        self._ensure_loaded()
        foreign = []
        for name, pkg in self._installed.items():
            if any(name in pkgs for _, pkgs in self._repos):
                continue
            foreign.append(pkg)
        return foreign

    def _run_pacman(self, args):
        cmd = self._cfg.pacman_command + args
        if self._log_file is None:
            ret = subprocess.call(cmd, stdin=subprocess.DEVNULL)
        else:
            with open(self._log_file, "a") as log:
                log.write("$ {}\n".format(" ".join(cmd)))
                log.flush()
                ret = subprocess.call(
                    cmd, stdin=subprocess.DEVNULL, stdout=log, stderr=subprocess.STDOUT
                )
        if ret != 0:
            raise LocalDatabaseError("{} exited with status {}".format(" ".join(cmd), ret))

    def install_batch(self, names, *, as_dependency=True):
        if not names:
            return
        args = ["-S", "--needed", "--noconfirm"]
        if as_dependency:
            args.append("--asdeps")
        args.extend(names)
        self._run_pacman(args)

    def install_artifact(self, path, *, allow_overwrite=True):
        args = ["-U", "--noconfirm"]
        if allow_overwrite:
            args.extend(["--overwrite", "*"])
        args.append(path)
        self._run_pacman(args)
