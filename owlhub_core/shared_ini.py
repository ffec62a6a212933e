#  Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
#  SPDX-License-Identifier: Apache-2.0
import configparser
import logging
import os
import re
from collections.abc import Mapping
from pathlib import Path
from typing import Final

logger: Final = logging.getLogger(__name__)

ENV_CONFIG_FILE: Final = "OWLHUB_CONFIG_FILE"
ENV_CREDENTIALS_FILE: Final = "OWLHUB_SHARED_CREDENTIALS_FILE"
ENV_PROFILE: Final = "OWLHUB_PROFILE"
DEFAULT_PROFILE: Final = "default"

_PROFILE_PREFIX = re.compile(r"^profile\s")

type Profile = dict[str, str]
type Profiles = dict[str, Profile]


def get_home_dir(environ: Mapping[str, str] | None = None) -> Path:
    """Resolve the user's home directory from the environment."""
    environ = os.environ if environ is None else environ
    if home := environ.get("HOME"):
        return Path(home)
    if home := environ.get("USERPROFILE"):
        return Path(home)
    if home_path := environ.get("HOMEPATH"):
        return Path(environ.get("HOMEDRIVE", "C:/") + home_path)
    return Path.home()


def parse_file(filename: str | Path, is_config: bool = False) -> Profiles:
    """Parse an ini file into a mapping of profile name to settings.

    Config file sections drop their leading ``profile `` prefix. Credentials file
    section names are used verbatim.
    """
    parser = configparser.ConfigParser(interpolation=None)
    with open(filename, encoding="utf-8") as f:
        parser.read_file(f)

    profiles: Profiles = {}
    for section in parser.sections():
        name = _PROFILE_PREFIX.sub("", section) if is_config else section
        profiles[name] = dict(parser[section])
    return profiles


class IniLoader:
    """Loads shared config and credentials files, caching each by absolute path.

    A cached file is never re-read until :py:meth:`clear_cached_files` is called.
    Concurrent first loads of the same path may parse it twice; the results are equal.
    """

    def __init__(self, environ: Mapping[str, str] | None = None):
        self._environ = os.environ if environ is None else environ
        self.resolved_profiles: dict[str, Profiles] = {}

    def clear_cached_files(self) -> None:
        logger.debug("Clearing cached ini files")
        self.resolved_profiles = {}

    def load_from(
        self, filename: str | Path | None = None, *, is_config: bool = False
    ) -> Profiles:
        """Load the profiles of an ini file.

        :param filename: The file to load. Defaults to the path named by the
            environment, then to ``~/.owlhub/config`` or ``~/.owlhub/credentials``.
        :param is_config: Whether the file is a config file rather than a
            credentials file.
        """
        path = os.path.abspath(filename or self.get_default_file_path(is_config))
        if path in self.resolved_profiles:
            logger.debug("Using cached ini file %s", path)
            return self.resolved_profiles[path]

        if os.path.isfile(path):
            logger.debug("Parsing ini file %s", path)
            profiles = parse_file(path, is_config=is_config)
        else:
            logger.debug("Ini file %s does not exist", path)
            profiles = {}
        self.resolved_profiles[path] = profiles
        return profiles

    def get_default_file_path(self, is_config: bool = False) -> str:
        env_var = ENV_CONFIG_FILE if is_config else ENV_CREDENTIALS_FILE
        if path := self._environ.get(env_var):
            return path
        name = "config" if is_config else "credentials"
        return str(get_home_dir(self._environ) / ".owlhub" / name)


_DEFAULT_INI_LOADER: IniLoader | None = None


def get_default_ini_loader() -> IniLoader:
    """The process-wide loader, created on first access."""
    global _DEFAULT_INI_LOADER
    if _DEFAULT_INI_LOADER is None:
        _DEFAULT_INI_LOADER = IniLoader()
    return _DEFAULT_INI_LOADER


def get_profiles_from_shared_config(
    ini_loader: IniLoader,
    filename: str | Path | None = None,
    config_filename: str | Path | None = None,
) -> Profiles:
    """Merge the profiles of the config and credentials files.

    Keys from the credentials file take precedence over those from the config file.
    """
    profiles: Profiles = {}
    from_config = ini_loader.load_from(config_filename, is_config=True)
    from_credentials = ini_loader.load_from(filename)
    for source in (from_config, from_credentials):
        for name, settings in source.items():
            profiles.setdefault(name, {}).update(settings)
    return profiles


def get_profile_name(
    profile: str | None = None, environ: Mapping[str, str] | None = None
) -> str:
    """The active profile: explicit name, then ``OWLHUB_PROFILE``, then ``default``."""
    environ = os.environ if environ is None else environ
    return profile or environ.get(ENV_PROFILE) or DEFAULT_PROFILE
