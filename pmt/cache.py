# SPDX-License-Identifier: MIT

import collections
import os

import pmt.makepkg as _makepkg
import pmt.util as _util

CacheEntry = collections.namedtuple("CacheEntry", ["path", "size"])


def _entry(path):
    if os.path.isdir(path):
        return CacheEntry(path, _util.tree_size(path))
    return CacheEntry(path, os.lstat(path).st_size)


def _unit_dirs(cache_dir):
    try:
        names = sorted(os.listdir(cache_dir))
    except FileNotFoundError:
        return []
    return [os.path.join(cache_dir, name) for name in names if not name.startswith(".")]


# Lists all but the `keep` most recent artifacts of every build unit.
def stale_artifacts(cache_dir, keep):
    entries = []
    for unit_dir in _unit_dirs(cache_dir):
        if not os.path.isdir(unit_dir):
            continue
        artifacts = []
        for fname in os.listdir(unit_dir):
            if not _makepkg.is_artifact(fname):
                continue
            path = os.path.join(unit_dir, fname)
            st = os.lstat(path)
            artifacts.append((st.st_mtime, path, st.st_size))
        artifacts.sort(reverse=True)
        for _, path, size in artifacts[keep:]:
            entries.append(CacheEntry(path, size))
    return entries


def reviewed_recipes(cfg):
    if not os.path.isdir(cfg.reviewed_dir):
        return []
    return [_entry(cfg.reviewed_dir)]


def temp_logs(cfg):
    return [_entry(path) for path in cfg.temp_logs if os.path.exists(path)]


def everything(cfg):
    entries = [_entry(path) for path in _unit_dirs(cfg.cache_dir)]
    return entries + reviewed_recipes(cfg) + temp_logs(cfg)


def remove_entries(entries):
    for entry in entries:
        if os.path.isdir(entry.path) and not os.path.islink(entry.path):
            _util.try_rmtree(entry.path)
        else:
            _util.try_unlink(entry.path)


# Interactive cache cleaning. Returns True if anything was removed.
def clean_cache(cfg, gate):
    choices = [
        (
            "Clean build cache (keep the {} newest builds per package)".format(
                cfg.keep_artifacts
            ),
            lambda: stale_artifacts(cfg.cache_dir, cfg.keep_artifacts),
        ),
        ("Clear reviewed PKGBUILDs", lambda: reviewed_recipes(cfg)),
        ("Clear temporary logs", lambda: temp_logs(cfg)),
        ("Clear everything", lambda: everything(cfg)),
    ]
    index = gate.select_one("What should be cleaned?", [label for label, _ in choices])
    if index is None:
        return False

    label, collect = choices[index]
    with _util.lock_directory(cfg.cache_dir):
        entries = collect()
        if not entries:
            _util.log_info("Nothing to clean")
            return False

        total = sum(entry.size for entry in entries)
        lines = ["{} ({})".format(entry.path, _util.format_size(entry.size)) for entry in entries]
        if not gate.confirm(
            "{}: remove {} item(s), freeing {}?".format(
                label, len(entries), _util.format_size(total)
            ),
            _util.abbreviate(lines),
        ):
            return False
        remove_entries(entries)
    _util.log_info("Freed {}".format(_util.format_size(total)))
    return True
