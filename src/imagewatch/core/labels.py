"""Build provenance from label-schema.org labels, and badge detection."""

from __future__ import annotations

import json
import posixpath
import re
from urllib.parse import urlsplit, urlunsplit

from imagewatch.models.image import ImageVersion
from imagewatch.models.lineage import License, VersionControl
from imagewatch.utils.logging import get_logger

logger = get_logger(__name__)

LICENSE_LABEL = "org.label-schema.license"
VCS_TYPE_LABEL = "org.label-schema.vcs-type"
VCS_URL_LABEL = "org.label-schema.vcs-url"
VCS_REF_LABEL = "org.label-schema.vcs-ref"

# Looser keys some images use instead, matched as substrings
LICENSE_ALT_LABELS = ("license",)
VCS_TYPE_ALT_LABELS = ("vcs-type",)
VCS_URL_ALT_LABELS = ("vcs-url",)
VCS_REF_ALT_LABELS = ("vcs-ref",)

GITHUB_SSH = "git@github.com:"
GITHUB_HTTPS = "https://github.com/"

KNOWN_LICENSES = {
    "agpl-3.0": "https://opensource.org/licenses/AGPL-3.0",
    "apache-2.0": "https://opensource.org/licenses/Apache-2.0",
    "bsd-2-clause": "https://opensource.org/licenses/BSD-2-Clause",
    "bsd-3-clause": "https://opensource.org/licenses/BSD-3-Clause",
    "epl-2.0": "https://opensource.org/licenses/EPL-2.0",
    "gpl-2.0": "https://opensource.org/licenses/GPL-2.0",
    "gpl-3.0": "https://opensource.org/licenses/GPL-3.0",
    "isc": "https://opensource.org/licenses/ISC",
    "lgpl-2.1": "https://opensource.org/licenses/LGPL-2.1",
    "lgpl-3.0": "https://opensource.org/licenses/LGPL-3.0",
    "mit": "https://opensource.org/licenses/MIT",
    "mpl-2.0": "https://opensource.org/licenses/MPL-2.0",
}


def _label(labels: dict[str, str], key: str, alternatives: tuple[str, ...]) -> str:
    if key in labels:
        return labels[key]
    for alternative in alternatives:
        for name, value in labels.items():
            if alternative in name:
                logger.debug("Found alternative label format %s", alternative)
                return value
    return ""


def _license(labels: dict[str, str]) -> License | None:
    code = _label(labels, LICENSE_LABEL, LICENSE_ALT_LABELS)
    if not code:
        return None
    return License(code=code, url=KNOWN_LICENSES.get(code.lower(), ""))


def github_tree_url(url: str, commit: str) -> str:
    """Turn a GitHub clone URL into a link to the tree at ``commit``.

    Example:
        >>> github_tree_url("git@github.com:org/app.git", "3f1c2d")
        'https://github.com/org/app/tree/3f1c2d'
    """
    url = url.replace(GITHUB_SSH, GITHUB_HTTPS, 1)
    if url.endswith(".git"):
        url = url[: -len(".git")]

    parts = urlsplit(url)
    path = posixpath.normpath(posixpath.join("/", parts.path, "tree", commit))
    return urlunsplit(parts._replace(path=path))


def _version_control(labels: dict[str, str]) -> VersionControl | None:
    vcs_type = _label(labels, VCS_TYPE_LABEL, VCS_TYPE_ALT_LABELS)
    url = _label(labels, VCS_URL_LABEL, VCS_URL_ALT_LABELS)
    commit = _label(labels, VCS_REF_LABEL, VCS_REF_ALT_LABELS)

    if vcs_type and vcs_type.lower() != "git":
        return None
    # Only GitHub links can be built
    if not commit or "github.com" not in url:
        return None

    try:
        tree_url = github_tree_url(url, commit)
    except ValueError as e:
        logger.error("Error parsing GitHub URL %s: %s", url, e)
        return None
    return VersionControl(type="git", url=tree_url, commit=commit)


def parse_labels(version: ImageVersion) -> tuple[License | None, VersionControl | None]:
    """Read the license and source commit a version declares in its labels.

    Args:
        version: Version whose ``labels`` holds the label set as JSON text

    Returns:
        Tuple of (license, version control); either is None when the
        labels do not declare it
    """
    if not version.labels:
        return None, None

    try:
        labels = json.loads(version.labels)
    except ValueError as e:
        logger.error("Error decoding labels of %s@%s: %s", version.image_name, version.sha, e)
        return None, None

    if not isinstance(labels, dict):
        return None, None
    labels = {str(k): str(v) for k, v in labels.items() if v is not None}

    return _license(labels), _version_control(labels)


def badge_pattern(badge_host: str) -> re.Pattern[str]:
    """Regex matching the badge image URLs served from ``badge_host``."""
    return re.compile(
        rf"https?://{re.escape(badge_host)}/badges(/[a-z\-]*)(/[a-z0-9\-._]*)?/[a-z0-9\-._]*(:[a-zA-Z0-9\-._]+)?\.svg"
    )


def count_badges(text: str | None, badge_host: str) -> int:
    """Count our badge images embedded in a hub full description."""
    if not text:
        return 0
    return len(badge_pattern(badge_host).findall(text))
