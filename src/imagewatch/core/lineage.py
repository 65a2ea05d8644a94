"""Finding parent and identical images from layer fingerprints."""

from __future__ import annotations

from imagewatch.core.fingerprint import fingerprint_layers
from imagewatch.core.labels import parse_labels
from imagewatch.models.image import ImageLayer, ImageVersion
from imagewatch.models.lineage import LineageMatch, VersionLineage
from imagewatch.models.viewer import ANONYMOUS, Viewer
from imagewatch.storage.base import Store
from imagewatch.utils.config import SiteConfig
from imagewatch.utils.errors import ImageNotFoundError, ImageWatchError
from imagewatch.utils.logging import get_logger
from imagewatch.utils.reference import OFFICIAL_NAMESPACE, is_official, page_url

logger = get_logger(__name__)


def official_filter(
    matches: list[ImageVersion],
    official_namespace: str = OFFICIAL_NAMESPACE,
) -> list[ImageVersion]:
    """Prefer official images over their clones.

    Once an official match is seen, every earlier match is discarded and
    later non-official matches are dropped. Later official matches stay.
    With no official match the list is returned unchanged.

    Args:
        matches: Candidate versions in store order
        official_namespace: Namespace of official images

    Returns:
        Filtered list, order preserved
    """
    result: list[ImageVersion] = []
    found_official = False

    for match in matches:
        if is_official(match.image_name, official_namespace):
            if not found_official:
                if result:
                    logger.debug("Discarding %d unofficial matched images", len(result))
                result = []
                found_official = True
            result.append(match)
        elif found_official:
            logger.debug("Discarding unofficial match %s", match.image_name)
        else:
            result.append(match)

    return result


class LineageMatcher:
    """Works out which images a version is built on or identical to.

    Example:
        matcher = LineageMatcher(store, config.site)
        lineage = matcher.version_lineage("org/app", sha, viewer)
        for parent in lineage.parents:
            print(parent.image_name, parent.tags)
    """

    def __init__(self, store: Store, site: SiteConfig | None = None) -> None:
        self.store = store
        self.site = site or SiteConfig()

    def identical(
        self,
        fingerprint: str,
        sha: str,
        image_name: str,
        viewer: Viewer = ANONYMOUS,
        layers: list[ImageLayer] | None = None,
    ) -> list[LineageMatch]:
        """Find other versions with the same fingerprint that the viewer may see.

        Args:
            fingerprint: Fingerprint to match
            sha: Content identifier of the version being described
            image_name: Image of the version being described
            viewer: Who is asking
            layers: Layers to attach to each match (the matched prefix)

        Returns:
            Matches annotated with tag names and page URLs
        """
        candidates = self.store.get_versions_by_fingerprint(fingerprint, sha, image_name)
        candidates = official_filter(candidates, self.site.official_namespace)

        matches = []
        for candidate in candidates:
            try:
                image = self.store.get_image_for_viewer(candidate.image_name, viewer)
            except ImageWatchError as e:
                logger.error("Error looking up matched image %s: %s", candidate.image_name, e)
                continue

            if image is None:
                logger.debug("Discarding matched image %s the viewer cannot access", candidate.image_name)
                continue

            matches.append(
                LineageMatch(
                    image_name=candidate.image_name,
                    sha=candidate.sha,
                    tags=self.store.get_tag_names(candidate.image_name, candidate.sha),
                    page_url=page_url(
                        self.site.site_url,
                        image.name,
                        is_private=image.is_private,
                        official_namespace=self.site.official_namespace,
                    ),
                    layers=list(layers or []),
                )
            )

        return matches

    def parents(
        self,
        layers: list[ImageLayer],
        sha: str,
        image_name: str,
        viewer: Viewer = ANONYMOUS,
    ) -> tuple[list[LineageMatch], list[ImageLayer]]:
        """Find the images this version is built on.

        Tries the longest proper prefix of the layer list first and stops
        at the first prefix that matches anything.

        Args:
            layers: Layers of the version in build order
            sha: Content identifier of the version
            image_name: Image of the version
            viewer: Who is asking

        Returns:
            Tuple of (parent matches, layers not covered by the parent)
        """
        for n in range(len(layers) - 1, 0, -1):
            prefix = layers[:n]
            matches = self.identical(fingerprint_layers(prefix), sha, image_name, viewer, layers=prefix)
            if matches:
                logger.debug("Found %d parents of %s@%s sharing %d layers", len(matches), image_name, sha, n)
                return matches, layers[n:]

        return [], list(layers)

    def version_lineage(self, image_name: str, sha: str, viewer: Viewer = ANONYMOUS) -> VersionLineage:
        """Build the lineage view of one version.

        Raises:
            ImageNotFoundError: If the image or version is unknown, or the
                image is private and the viewer has no permission
        """
        if self.store.get_image_for_viewer(image_name, viewer) is None:
            raise ImageNotFoundError(image_name)

        version = self.store.get_version(image_name, sha)

        identical: list[LineageMatch] = []
        if version.fingerprint:
            identical = self.identical(version.fingerprint, sha, image_name, viewer, layers=version.layers)

        parents, remaining = self.parents(version.layers, sha, image_name, viewer)
        declared_license, vcs = parse_labels(version)
        return VersionLineage(
            version=version,
            parents=parents,
            identical=identical,
            layers=remaining,
            license=declared_license,
            vcs=vcs,
        )
