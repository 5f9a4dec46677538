# SPDX-License-Identifier: MIT

import os
import shutil
import subprocess

import pmt.util as _util
from pmt.exceptions import GenericError


# Packages whose name carries one of these suffixes build from a moving VCS reference.
def is_vcs_package(name, suffixes):
    return any(name.endswith(suffix) for suffix in suffixes)


# Returns the command prefix that drops root privileges back to the sudo user.
# With strict=True, running as plain root (without sudo) is an error.
def user_prefix(*, strict=False):
    user = _util.sudo_user()
    if user is not None:
        return ["sudo", "-H", "-u", user]
    if strict and os.geteuid() == 0:
        raise GenericError("Cannot build AUR packages as root directly. Use: sudo pmt")
    return []


def log_msg(log_file, msg):
    if log_file is None:
        return
    with open(log_file, "a") as f:
        f.write(msg + "\n")


# Runs a command with its output appended to log_file.
# Returns the exit status; None if the command timed out or could not be started.
def run_logged(args, log_file, *, cwd=None, timeout=None):
    try:
        if log_file is None:
            return subprocess.call(
                args,
                cwd=cwd,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                timeout=timeout,
            )
        with open(log_file, "a") as log:
            return subprocess.call(
                args,
                cwd=cwd,
                stdin=subprocess.DEVNULL,
                stdout=log,
                stderr=subprocess.STDOUT,
                timeout=timeout,
            )
    except subprocess.TimeoutExpired:
        log_msg(log_file, "{} timed out after {} seconds".format(args[0], timeout))
        return None
    except OSError as e:
        log_msg(log_file, "Failed to run {}: {}".format(args[0], e))
        return None


def checkout_dir(cfg, build_unit):
    return os.path.join(cfg.cache_dir, build_unit)


# Clones the recipe repository of a build unit or fast-forwards an existing clone.
# With reset=True, local modifications (e.g. by makepkg's pkgver()) are discarded first.
def update_checkout(cfg, build_unit, log_file, *, reset=False):
    git = shutil.which("git")
    if git is None:
        raise GenericError("git not found; please install it and retry")

    _util.try_mkdir(cfg.cache_dir, recursive=True)
    _util.chown_to_sudo_user(cfg.cache_dir)
    prefix = user_prefix()
    pkg_dir = checkout_dir(cfg, build_unit)

    if os.path.isdir(os.path.join(pkg_dir, ".git")):
        if reset:
            log_msg(log_file, "Resetting local changes in {}...".format(build_unit))
            run_logged(prefix + [git, "-C", pkg_dir, "checkout", "--", "."], log_file)

        log_msg(log_file, "Updating existing clone of {}...".format(build_unit))
        if run_logged(prefix + [git, "-C", pkg_dir, "pull", "--ff-only"], log_file) != 0:
            log_msg(log_file, "Pull failed, re-cloning...")
            _util.try_rmtree(pkg_dir)

    if not os.path.exists(pkg_dir):
        git_url = "{}/{}.git".format(cfg.aur_url, build_unit)
        log_msg(log_file, "Cloning {} ...".format(git_url))
        if run_logged(prefix + [git, "clone", "--depth", "1", git_url, pkg_dir], log_file) != 0:
            raise GenericError("Failed to clone AUR package: {}".format(build_unit))

    _util.chown_to_sudo_user(pkg_dir, recursive=True)
    return pkg_dir
