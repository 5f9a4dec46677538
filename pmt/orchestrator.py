# SPDX-License-Identifier: MIT

import threading
import time
from enum import Enum

import yaml

import pmt.util as _util
from pmt.exceptions import (
    BuildFailureError,
    InstallFailureError,
    LocalDatabaseError,
    RecipeFetchError,
    RemoteDirectoryError,
    RepoDependencyInstallError,
    ReviewRejectedError,
)


class Stage(Enum):
    IDLE = 0
    CONFIRMING = 1
    INSTALLING_REPO_DEPS = 2
    REVIEWING = 3
    BUILDING = 4
    INSTALLING = 5
    # Terminal stages.
    COMPLETE = 6
    CANCELLED = 7
    REJECTED = 8
    FAILED = 9


Stage.strings = {
    Stage.IDLE: "idle",
    Stage.CONFIRMING: "confirm",
    Stage.INSTALLING_REPO_DEPS: "install-repo-deps",
    Stage.REVIEWING: "review",
    Stage.BUILDING: "build",
    Stage.INSTALLING: "install",
    Stage.COMPLETE: "complete",
    Stage.CANCELLED: "cancelled",
    Stage.REJECTED: "rejected",
    Stage.FAILED: "failed",
}


class PipelineState:
    def __init__(self, n_all):
        self.stage = Stage.IDLE
        self.index = 0
        self.n_all = n_all
        self.log_lines = []
        self.start_time = time.monotonic()
        self.failed_stage = None
        self.failed_package = None
        self.error = None

    @property
    def elapsed(self):
        return time.monotonic() - self.start_time

    @property
    def position(self):
        return "{}/{}".format(self.index + 1, self.n_all)


# Incremental reader of an append-only log file that is written by another thread.
# Incomplete trailing lines are buffered until their newline arrives.
class LogTail:
    def __init__(self, path):
        self.path = path
        self._offset = 0
        self._partial = b""

    def truncate(self):
        with open(self.path, "wb"):
            pass
        self._offset = 0
        self._partial = b""

    # With final=True, a buffered partial line is returned as well.
    # Only pass final=True after the writer is done.
    def read_new(self, *, final=False):
        try:
            with open(self.path, "rb") as f:
                f.seek(self._offset)
                data = f.read()
                self._offset = f.tell()
        except FileNotFoundError:
            data = b""

        chunks = (self._partial + data).split(b"\n")
        self._partial = chunks.pop()
        if final and self._partial:
            chunks.append(self._partial)
            self._partial = b""
        return [chunk.decode("utf-8", errors="replace") for chunk in chunks]


class BuildOrchestrator:
    def __init__(
        self,
        remote,
        local,
        gate,
        review_store,
        *,
        log_file,
        poll_interval=0.1,
        progress_file=None,
    ):
        self._remote = remote
        self._local = local
        self._gate = gate
        self._reviews = review_store
        self._log_file = log_file
        self._poll_interval = poll_interval
        self._tail = LogTail(log_file)
        self.progress_file = progress_file
        self.state = None

    # Returns True if the plan was completed and False if the operator declined it.
    # Raises ReviewRejectedError or a PipelineFailureError; nothing done before
    # the failure is reverted.
    def run(self, result, summary_name=None):
        assert result.ok
        pkgs = result.build_order
        self.state = PipelineState(len(pkgs))

        if not pkgs:
            _util.log_info("Nothing to do")
            self.state.stage = Stage.COMPLETE
            return True

        self._tail.truncate()

        self._enter(Stage.CONFIRMING)
        if not self._gate.confirm(
            "Build {} AUR package(s)?".format(len(pkgs)), self._plan_lines(result)
        ):
            self._enter(Stage.CANCELLED)
            _util.log_info("Build cancelled")
            return False

        if result.repo_deps:
            self._enter(Stage.INSTALLING_REPO_DEPS)
            try:
                self._run_tailed(
                    "Installing {} repo dependencies".format(len(result.repo_deps)),
                    self._local.install_batch,
                    result.repo_deps,
                    as_dependency=True,
                )
                self._local.reload()
            except LocalDatabaseError as e:
                raise self._fail(
                    RepoDependencyInstallError(Stage.INSTALLING_REPO_DEPS, result.repo_deps, str(e))
                )

        for i, pkg in enumerate(pkgs):
            self.state.index = i
            self._review(pkg)
            artifact = self._build(pkg)
            self._install(pkg, artifact)

        self._enter(Stage.COMPLETE)
        summary = "Successfully built and installed {} ({} AUR packages)".format(
            summary_name or pkgs[-1].name, len(pkgs)
        )
        self.state.log_lines.append(summary)
        self._gate.show_progress("Complete", self.state.log_lines, True, self.state.elapsed)
        _util.log_info(summary)
        return True

    def _plan_lines(self, result):
        lines = [
            "AUR packages to build ({}): {}".format(
                len(result.build_order), " ".join(pkg.name for pkg in result.build_order)
            )
        ]
        if result.repo_deps:
            lines.append(
                "Repo dependencies ({}): {}".format(
                    len(result.repo_deps), " ".join(result.repo_deps)
                )
            )
        if result.satisfied_deps:
            lines.append("Already satisfied: {}".format(len(result.satisfied_deps)))
        return lines

    def _review(self, pkg):
        self._enter(Stage.REVIEWING, pkg.name)
        try:
            text = self._remote.fetch_recipe_text(pkg.name, pkg.build_unit)
        except RemoteDirectoryError as e:
            raise self._fail(RecipeFetchError(Stage.REVIEWING, pkg.name, str(e)))

        old_text = self._reviews.load(pkg.build_unit)
        if old_text == text:
            old_text = None
        if not self._gate.review_recipe(pkg.name, text, old_text):
            raise self._fail(ReviewRejectedError(Stage.REVIEWING, pkg.name))
        self._reviews.save(pkg.build_unit, text)

    def _build(self, pkg):
        self._enter(Stage.BUILDING, pkg.name)
        artifact = self._run_tailed(
            "Building {} ({})".format(pkg.name, self.state.position),
            self._remote.build,
            pkg.name,
            pkg.build_unit,
            self._log_file,
        )
        if artifact is None:
            raise self._fail(
                BuildFailureError(Stage.BUILDING, pkg.name, self._remote.last_error)
            )
        return artifact

    def _install(self, pkg, artifact):
        self._enter(Stage.INSTALLING, pkg.name)
        try:
            self._run_tailed(
                "Installing {} ({})".format(pkg.name, self.state.position),
                self._local.install_artifact,
                artifact,
                allow_overwrite=True,
            )
            # Later packages of this run must see this one as installed.
            self._local.reload()
        except LocalDatabaseError as e:
            raise self._fail(InstallFailureError(Stage.INSTALLING, pkg.name, str(e)))

    # Runs fn on a worker thread while the log is polled from this thread.
    def _run_tailed(self, title, fn, *args, **kwargs):
        outcome = dict()

        def worker():
            try:
                outcome["value"] = fn(*args, **kwargs)
            except Exception as e:
                outcome["error"] = e

        thread = threading.Thread(target=worker, name="pmt-worker", daemon=True)
        thread.start()
        while thread.is_alive():
            self._poll(title, finished=False)
            thread.join(self._poll_interval)
        thread.join()
        self._poll(title, finished=True)

        if "error" in outcome:
            raise outcome["error"]
        return outcome.get("value")

    def _poll(self, title, *, finished):
        self.state.log_lines.extend(self._tail.read_new(final=finished))
        self._gate.show_progress(title, self.state.log_lines, finished, self.state.elapsed)

    def _enter(self, stage, subject=None):
        self.state.stage = stage
        if subject is not None:
            _util.log_info(
                "{} {} [{}]".format(Stage.strings[stage], subject, self.state.position)
            )
        self.emit_progress("running", subject)

    def _fail(self, e):
        if isinstance(e, ReviewRejectedError):
            self.state.stage = Stage.REJECTED
            self.emit_progress("rejected", e.package)
        else:
            self.state.stage = Stage.FAILED
            self.emit_progress("failure", e.package)
        self.state.failed_stage = e.stage
        self.state.failed_package = e.package
        self.state.error = str(e)
        return e

    def emit_progress(self, status, subject=None):
        if self.progress_file is None:
            return
        yml = {
            "n_this": self.state.index + 1,
            "n_all": self.state.n_all,
            "stage": Stage.strings[self.state.stage],
            "status": status,
            "subject": subject,
        }
        self.progress_file.write(yaml.safe_dump(yml, explicit_end=True))
        self.progress_file.flush()
