from __future__ import annotations

APP_TITLE = "Stacklume Backup Service"
APP_VERSION = "1.0.0"
SERVICE_NAME = "stacklume-backup"

BACKUP_FORMAT_VERSION = "1.0.0"

IMPORT_LIMITS = {
    "max_links_per_import": 1000,
    "max_categories_per_import": 100,
    "max_tags_per_import": 500,
}
