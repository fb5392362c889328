"""
Version manifest resolution.

A release of the node publishes a ``manifest.json`` naming the image
and tag of every companion service.  ``init`` resolves it once and
stores the result in the stack record, so later commands never touch
the network for it.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from ledgerstack.core.config.loader import Settings
from ledgerstack.core.errors import HTTPContractError, HTTPRequestError, ManifestError
from ledgerstack.core.models.stack import ManifestEntry, VersionManifest
from ledgerstack.core.reliability.http_client import JsonHttpClient

logger = logging.getLogger(__name__)

FIREFLY_IMAGE = "ghcr.io/hyperledger/firefly"

_DEFAULT_IMAGES = {
    "firefly": FIREFLY_IMAGE,
    "ethconnect": "ghcr.io/hyperledger/firefly-ethconnect",
    "fabconnect": "ghcr.io/hyperledger/firefly-fabconnect",
    "dataexchange-https": "ghcr.io/hyperledger/firefly-dataexchange-https",
    "tokens-erc1155": "ghcr.io/hyperledger/firefly-tokens-erc1155",
    "tokens-erc20-erc721": "ghcr.io/hyperledger/firefly-tokens-erc20-erc721",
    "signer": "ghcr.io/hyperledger/firefly-signer",
}


def default_manifest(tag: str = "latest") -> VersionManifest:
    """Every image at the same tag.  Used offline and by ``--mock``."""
    return VersionManifest.model_validate(
        {name: {"image": image, "tag": tag} for name, image in _DEFAULT_IMAGES.items()}
    )


def parse_manifest(data: Any, source: str) -> VersionManifest:
    if not isinstance(data, dict):
        raise ManifestError(f"manifest from {source} is not a JSON object")
    try:
        return VersionManifest.model_validate(data)
    except ValidationError as e:
        raise ManifestError(f"invalid manifest from {source}: {e}") from e


def read_manifest_file(path: str | Path) -> VersionManifest:
    manifest_path = Path(path).expanduser()
    try:
        data = json.loads(manifest_path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        raise ManifestError(f"unable to read manifest {manifest_path}: {e}") from e
    return parse_manifest(data, str(manifest_path))


def latest_release(http: JsonHttpClient, settings: Settings) -> str:
    """Tag name of the newest published release."""
    try:
        release = http.get(settings.releases_url) or {}
    except (HTTPContractError, HTTPRequestError) as e:
        raise ManifestError(f"unable to look up the latest release: {e}") from e
    tag = release.get("tag_name") if isinstance(release, dict) else None
    if not tag:
        raise ManifestError(f"no tag_name in release answer from {settings.releases_url}")
    return tag


def fetch_release_manifest(http: JsonHttpClient, settings: Settings, release: str) -> VersionManifest:
    """Download the manifest of ``release`` and pin the node image to it."""
    tag = release if release.startswith("v") else f"v{release}"
    url = settings.manifest_url.format(release=tag)
    logger.info("Fetching version manifest %s", url)
    try:
        data = http.get(url)
    except (HTTPContractError, HTTPRequestError) as e:
        raise ManifestError(f"unable to fetch manifest for release {tag}: {e}") from e

    manifest = parse_manifest(data, url)
    return manifest.model_copy(
        update={"firefly": ManifestEntry(image=FIREFLY_IMAGE, tag=tag)}
    )


def resolve_manifest(
    release: str,
    manifest_path: str | Path | None,
    settings: Settings,
    http: JsonHttpClient,
) -> VersionManifest:
    """Resolve the manifest for ``init``.

    A local manifest file wins over the release id.  Any failure raises
    ManifestError, which aborts ``init``.
    """
    if manifest_path:
        return read_manifest_file(manifest_path)
    if not release or release.lower() == "latest":
        release = latest_release(http, settings)
    return fetch_release_manifest(http, settings, release)


def check_manifest(manifest: VersionManifest, names: list[str]) -> None:
    """Raise ManifestError unless every named entry is present."""
    missing = [name for name in names if getattr(manifest, name, None) is None]
    if missing:
        raise ManifestError(f"version manifest is missing: {', '.join(missing)}")
