"""Constants shared across the update modules."""

from __future__ import annotations

UPDATE_CHECK_PATH = "v0.1/public/codepush/update_check"

PACKAGE_FILE_NAME = "app.json"
STATUS_FILE_NAME = "status.json"
SETTINGS_FILE_NAME = "settings.json"
DOWNLOAD_DIR_NAME = "download"

STATUS_CURRENT_KEY = "current_package"
STATUS_PREVIOUS_KEY = "previous_package"
SETTINGS_FAILED_KEY = "failed_updates"
SETTINGS_PENDING_KEY = "pending_update"

DOWNLOAD_CHUNK_SIZE = 64 * 1024

DEPLOYMENT_KEY_ENV = "BUNDLE_UPDATER_DEPLOYMENT_KEY"
SERVER_URL_ENV = "BUNDLE_UPDATER_SERVER_URL"
BASE_DIR_ENV = "BUNDLE_UPDATER_BASE_DIR"
