"""Client for the update service's update-check endpoint."""

from __future__ import annotations

import json
import logging
from http.client import HTTPException
from typing import Any, Mapping, Protocol
from urllib.parse import urlencode
from urllib.request import urlopen

from bundle_updater.update.constants import UPDATE_CHECK_PATH
from bundle_updater.update.models import (
    AcquisitionError,
    Configuration,
    LocalPackage,
    RemotePackage,
)

_LOGGER = logging.getLogger(__name__)


class UpdateQueryClient(Protocol):
    """Protocol describing how the orchestrator asks for the latest package."""

    def query_update(
        self, configuration: Configuration, query_package: LocalPackage
    ) -> RemotePackage | None:
        """Return the package offered by the service or ``None`` when there is none."""


def build_query_parameters(
    configuration: Configuration, query_package: LocalPackage
) -> list[tuple[str, str]]:
    """Return the update-check parameters, omitting values that are absent."""

    describes_release = bool(query_package.package_hash)
    candidates: list[tuple[str, str | None]] = [
        ("deployment_key", configuration.effective_deployment_key),
        ("app_version", query_package.app_version or configuration.app_version),
        ("package_hash", query_package.package_hash),
        ("label", query_package.label),
        ("is_mandatory", _format_flag(query_package.is_mandatory) if describes_release else None),
        ("client_unique_id", configuration.client_unique_id),
    ]
    return [(name, value) for name, value in candidates if value is not None and value != ""]


def build_update_check_url(configuration: Configuration, query_package: LocalPackage) -> str:
    base = configuration.server_url
    if not base.endswith("/"):
        base = f"{base}/"
    query = urlencode(build_query_parameters(configuration, query_package))
    return f"{base}{UPDATE_CHECK_PATH}?{query}"


class AcquisitionClient:
    """Query the update service over HTTPS."""

    def query_update(
        self, configuration: Configuration, query_package: LocalPackage
    ) -> RemotePackage | None:
        url = build_update_check_url(configuration, query_package)
        _LOGGER.debug("Querying update service: %s", url)
        payload = self._request_json(url)

        info = payload.get("update_info") if isinstance(payload, Mapping) else None
        if not isinstance(info, Mapping):
            raise AcquisitionError("Update service response is missing 'update_info'")

        if not info.get("is_available"):
            if info.get("update_app_version"):
                _LOGGER.info(
                    "Update service requires a newer binary than %s", configuration.app_version
                )
                return RemotePackage(
                    deployment_key=configuration.effective_deployment_key,
                    app_version=configuration.app_version,
                    is_available=False,
                    update_app_version=True,
                )
            _LOGGER.debug("Update service reports no update for %s", configuration.app_version)
            return None

        return self._build_remote_package(configuration, info)

    def _request_json(self, url: str) -> Any:
        try:
            with urlopen(url) as response:  # nosec - update service over HTTPS
                return json.load(response)
        except json.JSONDecodeError as exc:
            raise AcquisitionError(f"Update service returned invalid JSON: {exc}") from exc
        except (OSError, HTTPException, ValueError) as exc:
            raise AcquisitionError(f"Failed to query update service: {exc}") from exc

    def _build_remote_package(
        self, configuration: Configuration, info: Mapping[str, Any]
    ) -> RemotePackage:
        package_hash = _clean_text(info.get("package_hash"))
        download_url = _clean_text(info.get("download_url"))
        if package_hash is None or download_url is None:
            raise AcquisitionError("Update service offered a package without a hash or download URL")

        _LOGGER.debug(
            "Update service offered %s (label=%s, target=%s)",
            package_hash,
            info.get("label"),
            info.get("target_binary_range"),
        )
        return RemotePackage(
            deployment_key=configuration.effective_deployment_key,
            package_hash=package_hash,
            label=_clean_text(info.get("label")),
            is_mandatory=bool(info.get("is_mandatory")),
            description=_clean_text(info.get("description")),
            # Packages are bound to the binary they were offered to.
            app_version=configuration.app_version,
            download_url=download_url,
            download_size=_coerce_size(info.get("package_size")),
            update_app_version=bool(info.get("update_app_version")),
        )


def _format_flag(value: bool) -> str:
    return "true" if value else "false"


def _clean_text(raw: object) -> str | None:
    if not isinstance(raw, str):
        return None
    cleaned = raw.strip()
    return cleaned or None


def _coerce_size(raw: object) -> int:
    if isinstance(raw, bool):
        return 0
    if isinstance(raw, int) and raw > 0:
        return raw
    if isinstance(raw, str) and raw.strip().isdigit():
        return int(raw.strip())
    return 0


__all__ = [
    "AcquisitionClient",
    "UpdateQueryClient",
    "build_query_parameters",
    "build_update_check_url",
]
