# SPDX-License-Identifier: MIT

import collections

import pmt.util as _util
import pmt.vcs_utils as _vcs_utils
from pmt.exceptions import VersionProbeError
from pmt.resolver import resolve_all

# remote is the descriptor to build; for probed VCS packages it carries the probed version.
UpgradeCandidate = collections.namedtuple(
    "UpgradeCandidate", ["name", "local_version", "remote", "probed"]
)


class UpgradeScanner:
    def __init__(self, remote, local, *, vcs_suffixes, log_file=None):
        self._remote = remote
        self._local = local
        self._vcs_suffixes = vcs_suffixes
        self._log_file = log_file

    def scan(self):
        foreign = self._local.list_foreign_installed()
        if not foreign:
            return []
        _util.log_info("Checking {} foreign packages for updates...".format(len(foreign)))

        if self._log_file is not None:
            with open(self._log_file, "w"):
                pass

        published = dict()
        for pkg in self._remote.lookup_batch([pkg.name for pkg in foreign]):
            published[pkg.name] = pkg

        candidates = []
        seen_units = set()
        for pkg in foreign:
            remote = published.get(pkg.name)
            if remote is None:
                continue
            newer = self._local.compare_versions(remote.version, pkg.version) > 0

            # A published bump of a VCS package is already a candidate; otherwise the
            # published version says nothing about the upstream head.
            if not newer and _vcs_utils.is_vcs_package(pkg.name, self._vcs_suffixes):
                version = self._probe(remote)
                if version is None:
                    continue
                if self._local.compare_versions(version, pkg.version) <= 0:
                    continue
                candidate = UpgradeCandidate(
                    pkg.name, pkg.version, remote.with_version(version), True
                )
            elif newer:
                candidate = UpgradeCandidate(pkg.name, pkg.version, remote, False)
            else:
                continue

            if remote.build_unit in seen_units:
                continue
            seen_units.add(remote.build_unit)
            candidates.append(candidate)
        return candidates

    # Returns the probed version or None if the package should be skipped.
    def _probe(self, remote):
        _util.log_info("Checking VCS version of {}...".format(remote.name))
        try:
            version = self._remote.probe_version_without_building(
                remote.name, remote.build_unit, self._log_file
            )
        except VersionProbeError as e:
            _vcs_utils.log_msg(self._log_file, str(e))
            _util.log_warn("Skipping {}: {}".format(remote.name, e))
            return None
        if not version:
            _util.log_warn("Skipping {}: no version reported".format(remote.name))
            return None
        return version

    # Resolves every candidate and merges the results into a single plan.
    def plan(self, candidates, resolver):
        return resolve_all(resolver, [(c.name, c.remote) for c in candidates])
