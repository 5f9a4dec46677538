# SPDX-License-Identifier: MIT

import os

import jsonschema
import yaml

import pmt.util as _util
from pmt.exceptions import ConfigError

global_yaml_loader = yaml.SafeLoader
native_yaml_available = False

try:
    global_yaml_loader = yaml.CSafeLoader
    native_yaml_available = True
except AttributeError:
    pass

global_config_validator = None

DEFAULT_VCS_SUFFIXES = ["-git", "-svn", "-hg", "-bzr", "-fossil", "-cvs"]


# Throws an exception on validation errors.
def validate_config_yaml(yml, path):
    global global_config_validator
    if not global_config_validator:
        schema_path = os.path.join(os.path.dirname(__file__), "schema.yml")
        with open(schema_path, "r") as f:
            schema_yml = yaml.load(f, Loader=global_yaml_loader)
        global_config_validator = jsonschema.Draft7Validator(schema_yml)

    n = 0
    for e in global_config_validator.iter_errors(yml):
        if n == 0:
            _util.log_err("Failed to validate {}".format(path))
        _util.log_err(
            "* YAML element: {}\n           {}".format(
                "/".join(str(x) for x in e.absolute_path), e.message
            )
        )
        n += 1
    if n:
        raise ConfigError("Configuration file {} is invalid".format(path))


def default_config_path():
    if "PMT_CONFIG" in os.environ:
        return os.environ["PMT_CONFIG"]
    return os.path.join(_util.find_home(), ".config", "pmt", "config.yml")


class Config:
    def __init__(self, yml=None, *, home=None):
        self._yml = yml or dict()
        self._home = home or _util.find_home()

    @staticmethod
    def load(path=None):
        if path is None:
            path = default_config_path()
        try:
            with open(path, "r") as f:
                yml = yaml.load(f, Loader=global_yaml_loader)
        except FileNotFoundError:
            return Config()
        except yaml.YAMLError as e:
            raise ConfigError("Failed to parse {}: {}".format(path, e)) from e
        if yml is None:
            yml = dict()
        validate_config_yaml(yml, path)
        return Config(yml)

    def _get(self, section, key, default):
        return self._yml.get(section, dict()).get(key, default)

    def _path(self, key, default):
        return os.path.expanduser(self._get("paths", key, default))

    @property
    def aur_url(self):
        return self._get("aur", "url", "https://aur.archlinux.org").rstrip("/")

    @property
    def max_url_length(self):
        return self._get("aur", "max_url_length", 4000)

    @property
    def aur_timeout(self):
        return self._get("aur", "timeout", 30)

    @property
    def cache_dir(self):
        return self._path("cache_dir", os.path.join(self._home, ".cache", "pmt", "aur"))

    @property
    def reviewed_dir(self):
        return self._path("reviewed_dir", os.path.join(self._home, ".cache", "pmt", "reviewed"))

    @property
    def build_log(self):
        return self._path("build_log", "/tmp/pmt_build.log")

    @property
    def vcs_log(self):
        return self._path("vcs_log", "/tmp/pmt_vcs_check.log")

    @property
    def temp_logs(self):
        return [self.build_log, self.vcs_log]

    @property
    def pacman_conf(self):
        return self._get("pacman", "conf", "/etc/pacman.conf")

    @property
    def pacman_db_path(self):
        return self._get("pacman", "db_path", "/var/lib/pacman")

    @property
    def pacman_command(self):
        return list(self._get("pacman", "command", ["pacman"]))

    @property
    def poll_interval(self):
        return self._get("build", "poll_interval", 0.1)

    @property
    def probe_timeout(self):
        return self._get("build", "probe_timeout", 120)

    @property
    def keep_artifacts(self):
        return self._get("build", "keep_artifacts", 2)

    @property
    def vcs_suffixes(self):
        return list(self._get("build", "vcs_suffixes", DEFAULT_VCS_SUFFIXES))
