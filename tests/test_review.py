# SPDX-License-Identifier: MIT

import os

from pmt.review import ADDED, REMOVED, UNCHANGED, ReviewStore, compute_diff, diff_texts


def test_diff_replaced_line():
    diff = compute_diff(["a", "b", "c"], ["a", "x", "c"])
    assert [tuple(line) for line in diff] == [
        (UNCHANGED, "a"),
        (REMOVED, "b"),
        (ADDED, "x"),
        (UNCHANGED, "c"),
    ]


def test_diff_of_identical_texts():
    diff = compute_diff(["a", "b"], ["a", "b"])
    assert [line.tag for line in diff] == [UNCHANGED, UNCHANGED]


def test_diff_against_empty():
    assert [tuple(line) for line in compute_diff([], ["a", "b"])] == [(ADDED, "a"), (ADDED, "b")]
    assert [tuple(line) for line in compute_diff(["a"], [])] == [(REMOVED, "a")]
    assert compute_diff([], []) == []


def test_diff_keeps_common_subsequence():
    old = ["pkgname=foo", "pkgver=1.0", "pkgrel=1", "depends=(bar)", "build() {", "}"]
    new = ["pkgname=foo", "pkgver=1.1", "pkgrel=1", "build() {", "  make", "}"]

    diff = compute_diff(old, new)

    assert [line.text for line in diff if line.tag == UNCHANGED] == [
        "pkgname=foo",
        "pkgrel=1",
        "build() {",
        "}",
    ]
    assert [line.text for line in diff if line.tag == REMOVED] == ["pkgver=1.0", "depends=(bar)"]
    assert [line.text for line in diff if line.tag == ADDED] == ["pkgver=1.1", "  make"]


def test_diff_texts_ignores_carriage_returns():
    diff = diff_texts("a\r\nb\r\n", "a\nb\n")
    assert [line.tag for line in diff] == [UNCHANGED, UNCHANGED]


def test_review_store(tmp_path):
    store = ReviewStore(str(tmp_path / "reviewed"))
    assert store.load("foo") is None

    store.save("foo", "pkgver=1\n")
    assert store.load("foo") == "pkgver=1\n"
    assert store.path("foo") == os.path.join(str(tmp_path), "reviewed", "foo", "PKGBUILD")

    store.save("foo", "pkgver=2\n")
    assert store.load("foo") == "pkgver=2\n"
    assert os.listdir(os.path.join(str(tmp_path), "reviewed", "foo")) == ["PKGBUILD"]
