"""The link registry: durable record of which packages should be linked where.

The registry is an explicit object. Callers load it once, mutate it, and call
``save()`` at each mutation site; nothing is persisted implicitly.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

import typer
import yaml

from spine.core.errors import (
    ConfigCorruptError,
    InvalidPathError,
    PackageNotFoundError,
)
from spine.core.manifest import try_package_version
from spine.core.models import PackageLink

log = logging.getLogger(__name__)

APP_NAME = "spine"
CONFIG_ENV_VAR = "SPINE_CONFIG"


def default_config_path() -> Path:
    """Registry location: $SPINE_CONFIG, else the per-user app config dir."""
    override = os.environ.get(CONFIG_ENV_VAR)
    if override:
        return Path(override).expanduser()
    return Path(typer.get_app_dir(APP_NAME)) / "config.yaml"


class Registry:
    """Mapping of package name to PackageLink, backed by a YAML file."""

    def __init__(
        self,
        path: Path,
        links: dict[str, PackageLink] | None = None,
        extra: dict | None = None,
    ):
        self.path = path
        self._links: dict[str, PackageLink] = links or {}
        # Top-level keys other than links, written back untouched
        self._extra: dict = extra or {}

    @classmethod
    def load(cls, path: Path | None = None) -> Registry:
        """Read the registry file. A missing file yields an empty registry.

        Raises ConfigCorruptError if the file exists but cannot be parsed;
        user link intent is never discarded silently.
        """
        path = path or default_config_path()
        if not path.exists():
            log.debug("No registry at %s, starting empty", path)
            return cls(path)

        try:
            raw = yaml.safe_load(path.read_text(encoding="utf-8"))
        except yaml.YAMLError as e:
            raise ConfigCorruptError(path, str(e))
        except (OSError, UnicodeDecodeError) as e:
            raise ConfigCorruptError(path, str(e))
        if raw is None:
            raw = {}
        if not isinstance(raw, dict):
            raise ConfigCorruptError(path, "top level must be a mapping")

        raw_links = raw.pop("links", None) or {}
        if not isinstance(raw_links, dict):
            raise ConfigCorruptError(path, "links must be a mapping")

        links: dict[str, PackageLink] = {}
        for key, entry in raw_links.items():
            try:
                links[str(key)] = PackageLink.from_dict(str(key), entry)
            except ValueError as e:
                raise ConfigCorruptError(path, str(e))

        log.debug("Loaded %d links from %s", len(links), path)
        return cls(path, links, raw)

    @classmethod
    def load_or_create(cls, path: Path | None = None) -> Registry:
        registry = cls.load(path)
        if not registry.path.exists():
            registry.save()
        return registry

    def save(self) -> None:
        data = dict(self._extra)
        data["links"] = {
            name: self._links[name].to_dict() for name in sorted(self._links)
        }
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(yaml.safe_dump(data, default_flow_style=False), encoding="utf-8")
        log.debug("Saved %d links to %s", len(self._links), self.path)

    # -- queries ---------------------------------------------------------

    def __contains__(self, name: object) -> bool:
        return name in self._links

    def __len__(self) -> int:
        return len(self._links)

    def names(self) -> list[str]:
        return sorted(self._links)

    def list(self) -> list[PackageLink]:
        """All links sorted by name."""
        return [self._links[name] for name in sorted(self._links)]

    def get(self, name: str) -> PackageLink:
        try:
            return self._links[name]
        except KeyError:
            raise PackageNotFoundError(name, self.names()) from None

    # -- mutations -------------------------------------------------------

    def add(self, name: str, path: Path | str) -> PackageLink:
        """Register *name* at *path*, replacing any existing entry.

        The version is read from ``path/package.json`` when available;
        a missing or unreadable manifest leaves it unset.
        """
        package_path = Path(path).expanduser()
        if not package_path.exists():
            raise InvalidPathError(path)
        package_path = package_path.absolute()

        if name in self._links:
            log.info("Replacing existing link for %s", name)
        link = PackageLink(
            name=name,
            path=package_path,
            version=try_package_version(package_path),
        )
        self._links[name] = link
        return link

    def remove(self, name: str) -> PackageLink:
        link = self.get(name)
        del self._links[name]
        return link

    def add_linked_project(self, name: str, project_path: Path | str) -> bool:
        return self.get(name).add_project(project_path)

    def remove_linked_project(self, name: str, project_path: Path | str) -> bool:
        return self.get(name).remove_project(project_path)
