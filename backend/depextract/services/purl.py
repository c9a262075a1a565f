"""
PURL (Package URL) Utilities

Provides centralized parsing of Package URLs (PURLs).
See: https://github.com/package-url/purl-spec

Format: pkg:type/namespace/name@version?qualifiers#subpath
"""

from typing import Dict, NamedTuple, Optional
from urllib.parse import unquote


class ParsedPURL(NamedTuple):
    """Parsed PURL components."""

    type: str  # npm, pypi, maven, golang, cargo, ...
    namespace: Optional[str]  # npm scope, maven group, go module path prefix
    name: str
    version: Optional[str]
    qualifiers: Dict[str, str]
    subpath: Optional[str]

    @property
    def full_name(self) -> str:
        """Package name including its namespace, as package managers print it."""
        if self.namespace:
            return f"{self.namespace}/{self.name}"
        return self.name


def parse_purl(purl: Optional[str]) -> Optional[ParsedPURL]:
    """
    Parse a PURL string into its components.

    Components are URL-decoded. Returns None for anything that is not a
    ``pkg:type/name`` string.
    """
    if not purl or not isinstance(purl, str) or not purl.startswith("pkg:"):
        return None

    rest = purl[4:]

    subpath = None
    if "#" in rest:
        rest, subpath = rest.split("#", 1)
        subpath = unquote(subpath)

    qualifiers: Dict[str, str] = {}
    if "?" in rest:
        rest, qualifier_str = rest.split("?", 1)
        for pair in qualifier_str.split("&"):
            if "=" in pair:
                key, value = pair.split("=", 1)
                qualifiers[unquote(key)] = unquote(value)

    if "/" not in rest:
        return None
    purl_type, rest = rest.split("/", 1)
    purl_type = purl_type.lower()

    # The version separator is the last '@' after the last '/', so an
    # unencoded npm scope ("@scope/name") is not mistaken for a version.
    version = None
    last_segment_start = rest.rfind("/") + 1
    at = rest.rfind("@")
    if at >= last_segment_start and at > 0:
        rest, version = rest[:at], unquote(rest[at + 1 :]) or None

    if not rest:
        return None

    namespace = None
    name = rest
    if "/" in rest:
        namespace, name = rest.rsplit("/", 1)
        namespace = unquote(namespace)
    name = unquote(name)
    if not name:
        return None

    return ParsedPURL(
        type=purl_type,
        namespace=namespace or None,
        name=name,
        version=version,
        qualifiers=qualifiers,
        subpath=subpath,
    )
