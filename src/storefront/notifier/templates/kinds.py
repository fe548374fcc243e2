from enum import Enum


class NotificationKind(Enum):
    FILES_READY = "files_ready"
    CUSTOMIZATION_PROCESSING = "customization_processing"
    ADMIN_NEW_ORDER = "admin_new_order"
