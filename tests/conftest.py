# SPDX-License-Identifier: MIT

import pytest

from pmt.alpm import find_satisfier
from pmt.exceptions import LocalDatabaseError, RemoteDirectoryError
from pmt.vercmp import vercmp


# In-memory AUR. Every call is counted so that tests can check memoization.
class FakeRemote:
    def __init__(self, journal):
        self.journal = journal
        self.pkgs = dict()
        self.recipes = dict()  # Maps build units to PKGBUILD text.
        self.build_results = dict()  # Maps names to artifact paths (None = failure).
        self.build_output = dict()  # Maps names to text that the build appends to the log.
        self.probe_results = dict()  # Maps names to versions or exceptions.
        self.fail_requests = False
        self.lookup_calls = []
        self.batch_calls = []
        self.provider_calls = []
        self.built = []
        self.probed = []
        self.last_error = None

    def add(self, *pkgs):
        for pkg in pkgs:
            self.pkgs[pkg.name] = pkg

    def lookup(self, name):
        self.lookup_calls.append(name)
        if self.fail_requests:
            raise RemoteDirectoryError("AUR request failed: connection refused")
        return self.pkgs.get(name)

    def lookup_batch(self, names):
        self.batch_calls.append(list(names))
        if self.fail_requests:
            raise RemoteDirectoryError("AUR request failed: connection refused")
        return [self.pkgs[name] for name in names if name in self.pkgs]

    def search_by_provided_capability(self, name):
        self.provider_calls.append(name)
        return [pkg for pkg in self.pkgs.values() if pkg.provides_capability(name)]

    def fetch_recipe_text(self, name, build_unit):
        self.journal.append("fetch " + name)
        if build_unit not in self.recipes:
            raise RemoteDirectoryError("Failed to clone AUR package: {}".format(build_unit))
        return self.recipes[build_unit]

    def build(self, name, build_unit, log_sink):
        self.journal.append("build " + name)
        self.built.append(name)
        output = self.build_output.get(name)
        if output:
            with open(log_sink, "a") as f:
                f.write(output)
        path = self.build_results.get(name, artifact_path(build_unit, name))
        if path is None:
            self.last_error = "makepkg failed for: {}".format(name)
        return path

    def probe_version_without_building(self, name, build_unit, log_sink):
        self.probed.append(name)
        result = self.probe_results.get(name)
        if isinstance(result, Exception):
            raise result
        return result


class FakeLocalDb:
    def __init__(self, journal):
        self.journal = journal
        self.installed = dict()
        self.repo = dict()
        self.satisfied_queries = []
        self.batches = []
        self.artifacts = []
        self.reloads = 0
        self.fail_batch = False
        self.fail_install = set()
        self.install_exception = None

    def install(self, *pkgs):
        for pkg in pkgs:
            self.installed[pkg.name] = pkg

    def add_repo(self, *pkgs):
        for pkg in pkgs:
            self.repo[pkg.name] = pkg

    def is_satisfied(self, depstring):
        self.satisfied_queries.append(depstring)
        return find_satisfier(self.installed, depstring) is not None

    def is_available_in_repos(self, depstring):
        return find_satisfier(self.repo, depstring) is not None

    def compare_versions(self, a, b):
        return vercmp(a, b)

    def install_batch(self, names, *, as_dependency=True):
        self.journal.append("install_batch " + " ".join(names))
        if self.fail_batch:
            raise LocalDatabaseError("pacman exited with status 1")
        self.batches.append((list(names), as_dependency))

    def install_artifact(self, path, *, allow_overwrite=True):
        self.journal.append("install " + path)
        if self.install_exception is not None:
            raise self.install_exception
        if path in self.fail_install:
            raise LocalDatabaseError("pacman exited with status 1")
        self.artifacts.append((path, allow_overwrite))

    def reload(self):
        self.journal.append("reload")
        self.reloads += 1

    def list_foreign_installed(self):
        return [pkg for name, pkg in self.installed.items() if name not in self.repo]


# Presentation gate with canned answers.
class ScriptedGate:
    def __init__(self, journal):
        self.journal = journal
        self.confirm_answer = True
        self.review_answers = []  # Consumed in order; True once exhausted.
        self.select_answer = None
        self.confirms = []
        self.reviewed = []
        self.progress = []

    def confirm(self, title, lines):
        self.journal.append("confirm")
        self.confirms.append((title, list(lines)))
        return self.confirm_answer

    def select_one(self, title, options):
        self.journal.append("select")
        return self.select_answer

    def review_recipe(self, name, new_text, old_text=None):
        self.journal.append("review " + name)
        self.reviewed.append((name, new_text, old_text))
        if self.review_answers:
            return self.review_answers.pop(0)
        return True

    def show_progress(self, title, log_lines, finished, elapsed):
        self.progress.append((title, list(log_lines), finished))


def artifact_path(build_unit, name):
    return "/cache/{}/{}-1.0-1-x86_64.pkg.tar.zst".format(build_unit, name)


@pytest.fixture(autouse=True)
def no_sudo(monkeypatch):
    monkeypatch.delenv("SUDO_USER", raising=False)


@pytest.fixture
def journal():
    return []


@pytest.fixture
def remote(journal):
    return FakeRemote(journal)


@pytest.fixture
def local(journal):
    return FakeLocalDb(journal)


@pytest.fixture
def gate(journal):
    return ScriptedGate(journal)
