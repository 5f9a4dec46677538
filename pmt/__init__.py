# SPDX-License-Identifier: MIT

import argparse
import sys

import colorama

import pmt.cache
import pmt.config
import pmt.util as _util
from pmt.alpm import LocalDatabase
from pmt.aur import AurClient
from pmt.exceptions import GenericError
from pmt.orchestrator import BuildOrchestrator
from pmt.resolver import DependencyResolver, resolve_all
from pmt.review import ReviewStore
from pmt.ui import TerminalUI
from pmt.upgrade import UpgradeScanner

# ---------------------------------------------------------------------------------------
# Command line parsing.
# ---------------------------------------------------------------------------------------

main_parser = argparse.ArgumentParser(prog="pmt")
main_parser.add_argument("-v", dest="verbose", action="store_true", help="verbose")
main_parser.add_argument("--config", type=str, help="path to the configuration file")
main_subparsers = main_parser.add_subparsers(dest="command")


def print_events(result):
    if not _util.verbosity:
        return
    for event in result.events:
        _util.log_info(event.message)


def print_plan(result):
    _util.log_info("Build order:")
    for n, pkg in enumerate(result.build_order):
        suffix = ""
        if pkg.build_unit != pkg.name:
            suffix = " ({}pkgbase: {}{})".format(
                colorama.Fore.MAGENTA, pkg.build_unit, colorama.Style.RESET_ALL
            )
        symbol = "#{}".format(n + 1)
        _util.eprint("{:>5} {:30} {}{}".format(symbol, pkg.name, pkg.version, suffix))
    if result.repo_deps:
        _util.log_info("Repo dependencies:")
        for dep in result.repo_deps:
            _util.eprint("      " + dep)
    if result.satisfied_deps:
        _util.log_info("Already satisfied:")
        for dep in result.satisfied_deps:
            _util.eprint("      " + dep)


def make_clients(cfg):
    return AurClient(cfg), LocalDatabase(cfg, log_file=cfg.build_log)


def execute_plan(cfg, args, remote, local, result, summary_name):
    progress_file = None
    if args.progress_file is not None:
        progress_file = _util.open_file_from_cli(args.progress_file, "wt")
    orchestrator = BuildOrchestrator(
        remote,
        local,
        TerminalUI(noconfirm=args.noconfirm),
        ReviewStore(cfg.reviewed_dir),
        log_file=cfg.build_log,
        poll_interval=cfg.poll_interval,
        progress_file=progress_file,
    )
    try:
        orchestrator.run(result, summary_name)
    finally:
        if progress_file is not None:
            progress_file.close()


run_args_parser = argparse.ArgumentParser(add_help=False)
run_args_parser.add_argument("--noconfirm", action="store_true", help="answer all prompts with yes")
run_args_parser.add_argument(
    "--progress-file",
    type=str,
    help="file that receives machine-ready progress notifications (fd:N, path:FILE)",
)


def do_install(args):
    cfg = pmt.config.Config.load(args.config)
    remote, local = make_clients(cfg)

    with _util.lock_directory(cfg.cache_dir):
        resolver = DependencyResolver(remote, local)
        result = resolve_all(resolver, [(name, None) for name in args.packages])
        print_events(result)
        if not result.ok:
            raise GenericError(result.error)
        execute_plan(cfg, args, remote, local, result, " ".join(args.packages))


do_install.parser = main_subparsers.add_parser(
    "install", parents=[run_args_parser], help="build and install AUR packages"
)
do_install.parser.add_argument("packages", nargs="+", type=str)
do_install.parser.set_defaults(_impl=do_install)


def do_upgrade(args):
    cfg = pmt.config.Config.load(args.config)
    remote, local = make_clients(cfg)
    gate = TerminalUI(noconfirm=args.noconfirm)

    with _util.lock_directory(cfg.cache_dir):
        scanner = UpgradeScanner(remote, local, vcs_suffixes=cfg.vcs_suffixes, log_file=cfg.vcs_log)
        candidates = scanner.scan()
        if not candidates:
            _util.log_info("All AUR packages are up to date")
            return

        lines = []
        for c in candidates:
            line = "{} {} -> {}".format(c.name, c.local_version, c.remote.version)
            if c.probed:
                line += " (VCS)"
            lines.append(line)
        if not gate.confirm(
            "{} AUR package(s) can be upgraded".format(len(candidates)),
            _util.abbreviate(lines),
        ):
            return

        result = scanner.plan(candidates, DependencyResolver(remote, local))
        print_events(result)
        if not result.ok:
            raise GenericError(result.error)
        execute_plan(cfg, args, remote, local, result, "{} upgrades".format(len(candidates)))


do_upgrade.parser = main_subparsers.add_parser(
    "upgrade", parents=[run_args_parser], help="upgrade installed AUR packages"
)
do_upgrade.parser.set_defaults(_impl=do_upgrade)


def do_resolve(args):
    cfg = pmt.config.Config.load(args.config)
    remote, local = make_clients(cfg)

    result = DependencyResolver(remote, local).resolve(args.package)
    print_events(result)
    if not result.ok:
        raise GenericError(result.error)
    print_plan(result)


do_resolve.parser = main_subparsers.add_parser(
    "resolve", help="print the build plan of a package without executing it"
)
do_resolve.parser.add_argument("package", type=str)
do_resolve.parser.set_defaults(_impl=do_resolve)


def do_clean_cache(args):
    cfg = pmt.config.Config.load(args.config)
    pmt.cache.clean_cache(cfg, TerminalUI())


do_clean_cache.parser = main_subparsers.add_parser(
    "clean-cache", help="remove old builds, reviewed PKGBUILDs and logs"
)
do_clean_cache.parser.set_defaults(_impl=do_clean_cache)


def main():
    args = main_parser.parse_args()

    colorama.init()

    if args.verbose:
        _util.verbosity = True

    if not hasattr(args, "_impl"):
        main_parser.print_help()
        sys.exit(2)

    if _util.verbosity and not pmt.config.native_yaml_available:
        _util.log_warn("Using pure Python YAML parser")

    try:
        args._impl(args)
    except GenericError as e:
        _util.log_err(e)
        sys.exit(1)
    except KeyboardInterrupt:
        sys.exit(1)
