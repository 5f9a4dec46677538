# SPDX-License-Identifier: MIT

import collections
import copy
import re
from enum import Enum


class Provenance(Enum):
    LOCAL = 0
    REPO = 1
    AUR = 2


_constraint_re = re.compile(r"^([^<>=]*)(<=|>=|<|>|=)(.*)$")


def strip_version(depstring):
    return depstring.split("<", 1)[0].split(">", 1)[0].split("=", 1)[0]


class Dependency(collections.namedtuple("Dependency", ["name", "op", "version"])):
    __slots__ = ()

    @staticmethod
    def parse(depstring):
        m = _constraint_re.match(depstring)
        if m is None:
            return Dependency(depstring, None, None)
        return Dependency(m.group(1), m.group(2), m.group(3))

    def __str__(self):
        if self.op is None:
            return self.name
        return self.name + self.op + self.version


# Descriptors are shared between the memo map of a resolution and its build list;
# nothing mutates them after construction. Use with_version() to derive a copy.
class PackageDescriptor:
    __slots__ = (
        "name",
        "version",
        "pkgbase",
        "depends",
        "makedepends",
        "optdepends",
        "provides",
        "conflicts",
        "provenance",
        "repo",
        "description",
        "url",
        "licenses",
        "maintainer",
        "votes",
        "out_of_date",
    )

    def __init__(
        self,
        name,
        version,
        *,
        pkgbase=None,
        depends=(),
        makedepends=(),
        optdepends=(),
        provides=(),
        conflicts=(),
        provenance=Provenance.AUR,
        repo=None,
        description="",
        url="",
        licenses=(),
        maintainer=None,
        votes=0,
        out_of_date=False,
    ):
        self.name = name
        self.version = version
        self.pkgbase = pkgbase
        self.depends = list(depends)
        self.makedepends = list(makedepends)
        self.optdepends = list(optdepends)
        self.provides = list(provides)
        self.conflicts = list(conflicts)
        self.provenance = provenance
        self.repo = repo
        self.description = description
        self.url = url
        self.licenses = list(licenses)
        self.maintainer = maintainer
        self.votes = votes
        self.out_of_date = out_of_date

    # Split packages share the pkgbase of their recipe.
    @property
    def build_unit(self):
        return self.pkgbase or self.name

    @property
    def all_depends(self):
        return self.depends + self.makedepends

    def provides_capability(self, capability):
        return any(strip_version(prov) == capability for prov in self.provides)

    def with_version(self, version):
        other = copy.copy(self)
        other.version = version
        return other

    # Decodes a package object of the AUR RPC v5 interface.
    @staticmethod
    def from_rpc(obj):
        return PackageDescriptor(
            obj["Name"],
            obj["Version"],
            pkgbase=obj.get("PackageBase"),
            depends=obj.get("Depends") or [],
            makedepends=obj.get("MakeDepends") or [],
            optdepends=obj.get("OptDepends") or [],
            provides=obj.get("Provides") or [],
            conflicts=obj.get("Conflicts") or [],
            provenance=Provenance.AUR,
            repo="aur",
            description=obj.get("Description") or "",
            url=obj.get("URL") or "",
            licenses=obj.get("License") or [],
            maintainer=obj.get("Maintainer"),
            votes=obj.get("NumVotes") or 0,
            out_of_date=obj.get("OutOfDate") is not None,
        )

    def __repr__(self):
        return "PackageDescriptor({} {}, base={})".format(self.name, self.version, self.build_unit)
