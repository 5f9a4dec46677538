# SPDX-License-Identifier: MIT

# Exceptions are kept in this module so that the collaborator modules
# (pmt.aur, pmt.alpm, pmt.makepkg) do not need to import the resolver or
# the orchestrator.


class GenericError(Exception):
    pass


class ConfigError(GenericError):
    pass


class RemoteDirectoryError(GenericError):
    pass


class LocalDatabaseError(GenericError):
    pass


# ---------------------------------------------------------------------------------------
# Dependency resolution.
# ---------------------------------------------------------------------------------------


class ResolutionError(GenericError):
    pass


class PackageNotFoundError(ResolutionError):
    def __init__(self, name):
        super().__init__("Package not found in AUR: {}".format(name))
        self.name = name


class CircularDependencyError(ResolutionError):
    def __init__(self, name, path=None):
        msg = "Circular dependency detected: {}".format(name)
        if path:
            msg += " ({})".format(" -> ".join(list(path) + [name]))
        super().__init__(msg)
        self.name = name
        self.path = list(path or [])


class DependencyNotFoundError(ResolutionError):
    def __init__(self, dependency, requirer):
        super().__init__(
            "Dependency not found anywhere: {} (required by {})".format(dependency, requirer)
        )
        self.dependency = dependency
        self.requirer = requirer


# ---------------------------------------------------------------------------------------
# Build pipeline.
# ---------------------------------------------------------------------------------------


class PipelineError(GenericError):
    def __init__(self, msg, stage, package=None):
        super().__init__(msg)
        self.stage = stage
        self.package = package


# Raised when the operator declines a recipe. This is not a system failure.
class ReviewRejectedError(PipelineError):
    def __init__(self, stage, package):
        super().__init__(
            "Build cancelled (PKGBUILD rejected for {})".format(package), stage, package
        )


class PipelineFailureError(PipelineError):
    pass


class RepoDependencyInstallError(PipelineFailureError):
    def __init__(self, stage, deps, reason=None):
        msg = "Failed to install repo dependencies: {}".format(" ".join(deps))
        if reason:
            msg += " ({})".format(reason)
        super().__init__(msg, stage)
        self.deps = list(deps)


class RecipeFetchError(PipelineFailureError):
    def __init__(self, stage, package, reason=None):
        msg = "Failed to fetch PKGBUILD for {}".format(package)
        if reason:
            msg += " ({})".format(reason)
        super().__init__(msg, stage, package)


class BuildFailureError(PipelineFailureError):
    def __init__(self, stage, package, reason=None):
        msg = "Build failed for {}".format(package)
        if reason:
            msg += " ({})".format(reason)
        super().__init__(msg, stage, package)


class InstallFailureError(PipelineFailureError):
    def __init__(self, stage, package, reason=None):
        msg = "Install failed for {}".format(package)
        if reason:
            msg += " ({})".format(reason)
        super().__init__(msg, stage, package)


# Non-fatal: the upgrade scanner skips the package.
class VersionProbeError(GenericError):
    def __init__(self, name, reason):
        super().__init__("Could not determine VCS version of {}: {}".format(name, reason))
        self.name = name
