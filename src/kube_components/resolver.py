"""Component resolver - Resolve component names to ComponentSpecs.

Search paths are caller policy: the CLI passes bundled defaults, the site
file under /etc and any --config files; tests pass temporary files.

Layers are merged per component, field by field. A higher layer may set
only ``target_version`` for containerd and inherit everything else. Nested
tables (``probe``, ``checksum``, ``archive``) are replaced as a whole, never
mixed across layers.
"""

import logging
from importlib.resources import files
from pathlib import Path

from .exceptions import ComponentConfigError
from .schema import ComponentSpec
from .schema import read_component_tables

logger = logging.getLogger(__name__)

SITE_CONFIG_PATH = Path("/etc/kube-components/components.toml")


def bundled_config_path() -> Path:
    """Path of the component table shipped with the package."""
    return Path(str(files("kube_components") / "data" / "components.toml"))


def default_search_paths(extra: list[Path] | None = None) -> list[Path]:
    """Bundled table, then site file, then ``extra`` (highest precedence)."""
    return [bundled_config_path(), SITE_CONFIG_PATH, *(extra or [])]


class ComponentResolver:
    """
    Resolve component names against layered TOML tables (injected search paths).

    Missing files are skipped, so the site path may simply not exist.
    Tables are read once, on first use.
    """

    def __init__(self, search_paths: list[Path]):
        """Initialize resolver with caller-provided search paths.

        Args:
            search_paths: TOML files in precedence order (lowest to highest).

        Example:
            >>> resolver = ComponentResolver(search_paths=default_search_paths([Path("site.toml")]))
            >>> resolver.resolve("containerd").target_version
            '1.7.19'
        """
        self.search_paths = search_paths
        self._tables: dict[str, dict] | None = None

    def _merged_tables(self) -> dict[str, dict]:
        if self._tables is not None:
            return self._tables

        merged: dict[str, dict] = {}
        for path in self.search_paths:
            if not path.exists():
                logger.debug(f"Component table {path} not present, skipping")
                continue

            for name, table in read_component_tables(path).items():
                if not isinstance(table, dict):
                    raise ComponentConfigError(
                        f"[components.{name}] must be a table in {path}",
                        context={"component": name, "path": str(path)},
                    )
                layer = merged.setdefault(name, {})
                layer.update(table)
                logger.debug(f"Loaded {sorted(table)} for '{name}' from {path}")

        self._tables = merged
        return merged

    def resolve(self, name: str) -> ComponentSpec:
        """
        Resolve one component name to a validated spec.

        Raises:
            ComponentConfigError: Unknown component or invalid merged table
        """
        tables = self._merged_tables()
        if name not in tables:
            raise ComponentConfigError(
                f"Unknown component '{name}'. Known: {', '.join(sorted(tables)) or '(none)'}",
                context={"component": name},
            )
        return ComponentSpec.from_toml_table(name, tables[name])

    def resolve_many(self, names: list[str]) -> list[ComponentSpec]:
        """Resolve several names, preserving order and dropping duplicates."""
        seen: dict[str, ComponentSpec] = {}
        for name in names:
            if name not in seen:
                seen[name] = self.resolve(name)
        return list(seen.values())

    def list_components(self) -> list[ComponentSpec]:
        """All known components, in the order they were first defined."""
        return [self.resolve(name) for name in self._merged_tables()]

    def component_names(self) -> list[str]:
        return list(self._merged_tables())
