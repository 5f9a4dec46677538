# SPDX-License-Identifier: MIT

import json
import urllib.error
import urllib.parse
import urllib.request

import pmt.makepkg as _makepkg
import pmt.vcs_utils as _vcs_utils
from pmt.exceptions import GenericError, RemoteDirectoryError
from pmt.package import PackageDescriptor

USER_AGENT = "pmt/1.0"


def quote_arg(s):
    return urllib.parse.quote(s, safe="-_.~")


# Splits info requests such that no request path exceeds max_len characters.
def batch_info_paths(names, max_len):
    base_path = "/rpc/v5/info?"
    paths = []
    path = base_path
    for name in names:
        param = "arg[]=" + quote_arg(name)
        if path != base_path:
            if len(path) + 1 + len(param) > max_len:
                paths.append(path)
                path = base_path
            else:
                param = "&" + param
        path += param
    if path != base_path:
        paths.append(path)
    return paths


class AurClient:
    def __init__(self, cfg):
        self._cfg = cfg
        self.last_error = None

    def _get(self, path):
        url = self._cfg.aur_url + path
        req = urllib.request.Request(url, headers={"User-Agent": USER_AGENT})
        try:
            with urllib.request.urlopen(req, timeout=self._cfg.aur_timeout) as resp:
                body = resp.read()
        except (urllib.error.URLError, OSError) as e:
            raise RemoteDirectoryError("AUR request {} failed: {}".format(path, e)) from e

        try:
            yml = json.loads(body)
        except ValueError as e:
            raise RemoteDirectoryError("Failed to parse AUR response: {}".format(e)) from e
        if not isinstance(yml, dict):
            raise RemoteDirectoryError("Unexpected AUR response for {}".format(path))
        if yml.get("type") == "error":
            raise RemoteDirectoryError("AUR error: {}".format(yml.get("error")))
        return [PackageDescriptor.from_rpc(obj) for obj in yml.get("results") or []]

    def lookup(self, name):
        results = self._get("/rpc/v5/info?arg[]=" + quote_arg(name))
        for pkg in results:
            if pkg.name == name:
                return pkg
        return None

    # Unknown names are silently omitted from the result.
    def lookup_batch(self, names):
        results = []
        for path in batch_info_paths(names, self._cfg.max_url_length):
            results.extend(self._get(path))
        return results

    def search_by_provided_capability(self, name):
        return self._get("/rpc/v5/search/" + quote_arg(name) + "?by=provides")

    def fetch_recipe_text(self, name, build_unit):
        try:
            return _makepkg.fetch_recipe_text(self._cfg, build_unit)
        except GenericError as e:
            self.last_error = str(e)
            raise RemoteDirectoryError(str(e)) from e

    # Returns the artifact path or None; the diagnostic goes to last_error and the log.
    def build(self, name, build_unit, log_sink):
        try:
            return _makepkg.build_package(self._cfg, name, build_unit, log_sink)
        except GenericError as e:
            self.last_error = str(e)
            _vcs_utils.log_msg(log_sink, str(e))
            return None

    def probe_version_without_building(self, name, build_unit, log_sink):
        return _makepkg.probe_version(
            self._cfg, name, build_unit, log_sink, timeout=self._cfg.probe_timeout
        )
