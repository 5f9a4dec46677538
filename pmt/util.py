# SPDX-License-Identifier: MIT

import contextlib
import errno
import fcntl
import os
import os.path as path
import pwd
import re
import shutil
import sys

import colorama

verbosity = False


def eprint(*args, **kwargs):
    return print(*args, **kwargs, file=sys.stderr)


def log_info(msg):
    eprint("{}pmt{}: {}".format(colorama.Style.BRIGHT, colorama.Style.RESET_ALL, msg))


def log_warn(msg):
    eprint(
        "{}pmt{}: {}{}{}".format(
            colorama.Style.BRIGHT,
            colorama.Style.NORMAL,
            colorama.Fore.YELLOW,
            msg,
            colorama.Style.RESET_ALL,
        )
    )


def log_err(msg):
    eprint(
        "{}pmt{}: {}{}{}".format(
            colorama.Style.BRIGHT,
            colorama.Style.NORMAL,
            colorama.Fore.RED,
            msg,
            colorama.Style.RESET_ALL,
        ),
    )


# Returns the name of the user that invoked us through sudo, if any.
def sudo_user():
    if os.geteuid() != 0:
        return None
    user = os.environ.get("SUDO_USER")
    if not user:
        return None
    return user


# Builds must not write into root's home when we run under sudo.
def find_home():
    user = sudo_user()
    if user is not None:
        try:
            return pwd.getpwnam(user).pw_dir
        except KeyError:
            pass
    home = os.environ.get("HOME")
    if not home:
        return "/tmp"
    return home


def try_mkdir(path, recursive=False):
    try:
        if not recursive:
            os.mkdir(path)
        else:
            os.makedirs(path)
    except OSError as e:
        if e.errno != errno.EEXIST:
            raise


def try_unlink(path):
    try:
        os.unlink(path)
    except OSError as e:
        if e.errno != errno.ENOENT:
            raise


def try_rmtree(path):
    try:
        shutil.rmtree(path)
    except OSError as e:
        if e.errno != errno.ENOENT:
            raise


def chown_to_sudo_user(path, recursive=False):
    user = sudo_user()
    if user is None:
        return
    shutil.chown(path, user=user)
    if not recursive:
        return
    for root, dirs, files in os.walk(path):
        for name in dirs + files:
            with contextlib.suppress(FileNotFoundError):
                shutil.chown(os.path.join(root, name), user=user)


def get_concurrency():
    try:
        return len(os.sched_getaffinity(0))
    except AttributeError:
        # MacOS does not have CPU affinity.
        return os.cpu_count()


def format_size(n):
    if n < 1024:
        return "{} B".format(n)
    for unit in ["KiB", "MiB", "GiB"]:
        n /= 1024
        if n < 1024 or unit == "GiB":
            return "{:.1f} {}".format(n, unit)


def tree_size(root):
    total = 0
    for dirpath, _, files in os.walk(root):
        for name in files:
            try:
                total += os.lstat(os.path.join(dirpath, name)).st_size
            except FileNotFoundError:
                continue
    return total


@contextlib.contextmanager
def lock_directory(directory, mode=fcntl.LOCK_EX):
    try_mkdir(directory, recursive=True)
    fname = path.join(directory, ".pmt_lock")
    with open(fname, "w") as f:
        fcntl.flock(f.fileno(), mode)
        yield


# Accepts "fd:N", "path:FILE" or a plain path.
def open_file_from_cli(spec, *args, **kwargs):
    m = re.match(r"fd:(\d+)$", spec)
    if m is not None:
        return open(int(m.group(1)), *args, **kwargs)
    m = re.match(r"path:(.+)", spec)
    if m is not None:
        return open(m.group(1), *args, **kwargs)
    return open(spec, *args, **kwargs)


# Shows at most `limit` entries followed by "... and N more".
def abbreviate(lines, limit=15):
    lines = list(lines)
    if len(lines) <= limit:
        return lines
    return lines[:limit] + ["... and {} more".format(len(lines) - limit)]
