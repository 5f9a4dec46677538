# SPDX-License-Identifier: MIT

import collections
from enum import Enum

from pmt.exceptions import (
    CircularDependencyError,
    DependencyNotFoundError,
    PackageNotFoundError,
    RemoteDirectoryError,
    ResolutionError,
)
from pmt.package import strip_version


class EventKind(Enum):
    RESOLVE = 0
    FETCH = 1
    SKIP_INSTALLED = 2
    BATCH_FETCH = 3
    SEARCH_PROVIDER = 4
    PROVIDER_FOUND = 5
    RESOLVED = 6
    SPLIT_SKIPPED = 7


ResolverEvent = collections.namedtuple("ResolverEvent", ["kind", "subject", "message"])


def _append_unique(lst, item):
    if item not in lst:
        lst.append(item)


# Scratch state of a single resolve() call. It is never shared between calls.
class ResolutionContext:
    def __init__(self):
        self.visited = set()  # Names that are fully resolved.
        self.in_progress = set()  # Names on the current DFS path.
        self.descriptors = dict()  # Maps names to fetched PackageDescriptors.
        self.providers = dict()  # Maps virtual names to provider names (or None).
        self.build_order = []  # Stores PackageDescriptors in post-order.
        self.repo_deps = []
        self.satisfied_deps = []
        self.events = []
        self.stack = []  # Stores _Frames.

    def emit(self, kind, subject, message):
        self.events.append(ResolverEvent(kind, subject, message))

    @property
    def path(self):
        return [frame.name for frame in self.stack]


class _Frame:
    __slots__ = ("name", "pkg", "deps", "resolved_n")

    def __init__(self, name, pkg):
        self.name = name
        self.pkg = pkg
        self.deps = pkg.all_depends
        self.resolved_n = 0  # Number of processed dependency strings.


class ResolutionResult:
    def __init__(
        self,
        ok,
        *,
        error=None,
        failure=None,
        build_order=(),
        repo_deps=(),
        satisfied_deps=(),
        events=(),
    ):
        self.ok = ok
        self.error = error
        self.failure = failure
        self.build_order = list(build_order)
        self.repo_deps = list(repo_deps)
        self.satisfied_deps = list(satisfied_deps)
        self.events = list(events)

    @staticmethod
    def failed(e, events=()):
        return ResolutionResult(False, error=str(e), failure=e, events=events)


# Merges the results of several roots into one plan.
# Build lists are deduplicated by build unit, keeping the first occurrence.
def merge_results(results):
    seen_bases = set()
    build_order = []
    repo_deps = set()
    satisfied_deps = []
    events = []
    for result in results:
        assert result.ok
        for pkg in result.build_order:
            if pkg.build_unit in seen_bases:
                continue
            seen_bases.add(pkg.build_unit)
            build_order.append(pkg)
        repo_deps.update(result.repo_deps)
        for dep in result.satisfied_deps:
            _append_unique(satisfied_deps, dep)
        events.extend(result.events)
    return ResolutionResult(
        True,
        build_order=build_order,
        repo_deps=sorted(repo_deps),
        satisfied_deps=satisfied_deps,
        events=events,
    )


# Resolves several (name, root descriptor or None) pairs and merges the plans.
# Fails as soon as one root fails to resolve.
def resolve_all(resolver, roots):
    results = []
    for name, root in roots:
        result = resolver.resolve(name, root=root)
        if not result.ok:
            return ResolutionResult(
                False,
                error="Failed to resolve {}: {}".format(name, result.error),
                failure=result.failure,
                events=result.events,
            )
        results.append(result)
    return merge_results(results)


class DependencyResolver:
    def __init__(self, remote, local):
        self._remote = remote
        self._local = local

    # Returns a ResolutionResult whose build_order lists every dependency before its
    # dependents. Any unresolvable name fails the whole resolution.
    def resolve(self, name, root=None):
        ctx = ResolutionContext()
        if root is not None:
            ctx.descriptors[root.name] = root

        ctx.emit(EventKind.RESOLVE, name, "Resolving dependencies for {}...".format(name))
        try:
            self._traverse(ctx, name)
        except (ResolutionError, RemoteDirectoryError) as e:
            return ResolutionResult.failed(e, ctx.events)

        seen_bases = set()
        deduped = []
        for pkg in ctx.build_order:
            if pkg.build_unit in seen_bases:
                ctx.emit(
                    EventKind.SPLIT_SKIPPED,
                    pkg.name,
                    "Skipping {} (split package, already building {})".format(
                        pkg.name, pkg.build_unit
                    ),
                )
                continue
            seen_bases.add(pkg.build_unit)
            deduped.append(pkg)

        return ResolutionResult(
            True,
            build_order=deduped,
            repo_deps=ctx.repo_deps,
            satisfied_deps=ctx.satisfied_deps,
            events=ctx.events,
        )

    # Iterative post-order DFS. A frame is completed once all of its dependency
    # strings have been processed; only then is the package appended to the build order.
    def _traverse(self, ctx, root_name):
        self._enter(ctx, root_name)

        while ctx.stack:
            frame = ctx.stack[-1]
            if frame.resolved_n == len(frame.deps):
                ctx.stack.pop()
                ctx.in_progress.discard(frame.name)
                ctx.visited.add(frame.name)
                ctx.build_order.append(frame.pkg)
                ctx.emit(EventKind.RESOLVED, frame.name, "Resolved: {}".format(frame.name))
                continue

            dep = frame.deps[frame.resolved_n]
            frame.resolved_n += 1
            target = self._classify(ctx, frame, dep)
            if target is not None:
                self._enter(ctx, target)

    def _enter(self, ctx, name):
        if name in ctx.visited:
            return
        if name in ctx.in_progress:
            raise CircularDependencyError(name, ctx.path)

        pkg = ctx.descriptors.get(name)
        if pkg is None:
            ctx.emit(EventKind.FETCH, name, "Fetching AUR info for {}...".format(name))
            pkg = self._remote.lookup(name)
            if pkg is None:
                raise PackageNotFoundError(name)
            ctx.descriptors[name] = pkg

        if self._local.is_satisfied("{}={}".format(pkg.name, pkg.version)):
            ctx.emit(
                EventKind.SKIP_INSTALLED,
                name,
                "Skipping {} ({} already installed)".format(name, pkg.version),
            )
            ctx.visited.add(name)
            return

        ctx.in_progress.add(name)
        self._prefetch(ctx, pkg)
        ctx.stack.append(_Frame(name, pkg))

    # Issues one batched lookup for all dependencies of pkg that may need to be built.
    # Names that the batch does not return are virtual and resolved by _find_provider().
    def _prefetch(self, ctx, pkg):
        unknown = []
        for dep in pkg.all_depends:
            dep_name = strip_version(dep)
            if dep_name in ctx.visited or dep_name in ctx.in_progress:
                continue
            if dep_name in ctx.descriptors or dep_name in ctx.providers:
                continue
            if dep_name in unknown:
                continue
            if self._local.is_satisfied(dep) or self._local.is_available_in_repos(dep):
                continue
            unknown.append(dep_name)

        if not unknown:
            return
        ctx.emit(
            EventKind.BATCH_FETCH,
            pkg.name,
            "Batch-fetching {} AUR dependencies...".format(len(unknown)),
        )
        for fetched in self._remote.lookup_batch(unknown):
            ctx.descriptors.setdefault(fetched.name, fetched)

    # Returns the name to descend into, or None if nothing needs to be built.
    def _classify(self, ctx, frame, dep):
        dep_name = strip_version(dep)

        if self._local.is_satisfied(dep):
            _append_unique(ctx.satisfied_deps, dep)
            return None
        if self._local.is_available_in_repos(dep):
            _append_unique(ctx.repo_deps, dep)
            return None

        if dep_name in ctx.visited:
            return None
        if dep_name in ctx.in_progress:
            raise CircularDependencyError(dep_name, ctx.path)
        if dep_name in ctx.descriptors:
            return dep_name

        provider = self._find_provider(ctx, dep_name)
        if provider is not None:
            return provider
        raise DependencyNotFoundError(dep, frame.name)

    def _find_provider(self, ctx, dep_name):
        if dep_name in ctx.providers:
            return ctx.providers[dep_name]

        ctx.emit(
            EventKind.SEARCH_PROVIDER,
            dep_name,
            "Searching AUR for provider of {}...".format(dep_name),
        )
        for pkg in self._remote.search_by_provided_capability(dep_name):
            if not pkg.provides_capability(dep_name):
                continue
            ctx.emit(
                EventKind.PROVIDER_FOUND,
                dep_name,
                "Found: {} provides {}".format(pkg.name, dep_name),
            )
            ctx.providers[dep_name] = pkg.name
            ctx.descriptors.setdefault(pkg.name, pkg)
            return pkg.name

        ctx.providers[dep_name] = None
        return None
