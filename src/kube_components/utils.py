"""Version and URL template helpers shared by probes, schema and installer."""

import logging
import string

from .exceptions import ComponentConfigError

logger = logging.getLogger(__name__)

NO_VERSION = "none"

TEMPLATE_FIELDS = frozenset({"repository", "version", "version_clean", "arch"})


def normalize_version(version: str | None) -> str:
    """Normalize a version string for equality comparison.

    Strips surrounding whitespace and a single leading "v". Missing or empty
    input maps to the ``"none"`` sentinel, which never equals a real target.

    Examples:
        >>> normalize_version("v1.7.19")
        '1.7.19'
        >>> normalize_version(" 1.7.19\\n")
        '1.7.19'
        >>> normalize_version("")
        'none'
    """
    if version is None:
        return NO_VERSION
    version = version.strip()
    if version.startswith("v"):
        version = version[1:]
    return version or NO_VERSION


def render_template(template: str, **values: str) -> str:
    """Fill a URL or filename template.

    Supported placeholders: ``{repository}``, ``{version}`` (as configured),
    ``{version_clean}`` (normalized) and ``{arch}``.

    Raises:
        ComponentConfigError: If the template names an unknown placeholder
    """
    fields = {name for _, name, _, _ in string.Formatter().parse(template) if name}
    unknown = fields - TEMPLATE_FIELDS
    if unknown:
        raise ComponentConfigError(
            f"Unknown placeholder(s) {sorted(unknown)} in template '{template}'",
            context={"template": template},
        )
    missing = fields - values.keys()
    if missing:
        raise ComponentConfigError(
            f"No value for placeholder(s) {sorted(missing)} in template '{template}'",
            context={"template": template},
        )
    return template.format(**values)


def template_values(repository: str, version: str, arch: str) -> dict[str, str]:
    """Build the placeholder mapping for one component and architecture."""
    return {
        "repository": repository.rstrip("/"),
        "version": version,
        "version_clean": normalize_version(version),
        "arch": arch,
    }
