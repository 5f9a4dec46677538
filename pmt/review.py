# SPDX-License-Identifier: MIT

import collections
import os
import tempfile

import pmt.util as _util

DiffLine = collections.namedtuple("DiffLine", ["tag", "text"])

UNCHANGED = " "
ADDED = "+"
REMOVED = "-"


def split_lines(content):
    return content.replace("\r", "").splitlines()


# LCS alignment of two line sequences. Returns DiffLines in file order.
def compute_diff(old_lines, new_lines):
    m = len(old_lines)
    n = len(new_lines)

    # dp[i][j] is the LCS length of old_lines[:i] and new_lines[:j].
    dp = [[0] * (n + 1) for _ in range(m + 1)]
    for i in range(1, m + 1):
        for j in range(1, n + 1):
            if old_lines[i - 1] == new_lines[j - 1]:
                dp[i][j] = dp[i - 1][j - 1] + 1
            else:
                dp[i][j] = max(dp[i - 1][j], dp[i][j - 1])

    result = []
    i = m
    j = n
    while i > 0 or j > 0:
        if i > 0 and j > 0 and old_lines[i - 1] == new_lines[j - 1]:
            result.append(DiffLine(UNCHANGED, old_lines[i - 1]))
            i -= 1
            j -= 1
        elif j > 0 and (i == 0 or dp[i][j - 1] >= dp[i - 1][j]):
            result.append(DiffLine(ADDED, new_lines[j - 1]))
            j -= 1
        else:
            result.append(DiffLine(REMOVED, old_lines[i - 1]))
            i -= 1
    result.reverse()
    return result


def diff_texts(old_text, new_text):
    return compute_diff(split_lines(old_text), split_lines(new_text))


# Keeps the last accepted recipe of every build unit.
class ReviewStore:
    def __init__(self, reviewed_dir):
        self.reviewed_dir = reviewed_dir

    def path(self, build_unit):
        return os.path.join(self.reviewed_dir, build_unit, "PKGBUILD")

    def load(self, build_unit):
        try:
            with open(self.path(build_unit), "r") as f:
                return f.read()
        except FileNotFoundError:
            return None

    def save(self, build_unit, text):
        unit_dir = os.path.join(self.reviewed_dir, build_unit)
        _util.try_mkdir(unit_dir, recursive=True)
        with tempfile.NamedTemporaryFile("w", dir=unit_dir, delete=False) as f:
            f.write(text)
        os.rename(f.name, self.path(build_unit))
        _util.chown_to_sudo_user(unit_dir, recursive=True)
