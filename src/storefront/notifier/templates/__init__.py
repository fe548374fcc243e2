"""Template registry: maps a notification kind to its template class.

Each template renders a ``{"subject", "body"}`` dict from a context dict.
"""

from storefront.notifier.templates.admin_new_order import AdminNewOrderTemplate
from storefront.notifier.templates.customization_processing import CustomizationProcessingTemplate
from storefront.notifier.templates.files_ready import FilesReadyTemplate
from storefront.notifier.templates.kinds import NotificationKind

TEMPLATE_REGISTRY: dict[str, type] = {
    NotificationKind.FILES_READY.value: FilesReadyTemplate,
    NotificationKind.CUSTOMIZATION_PROCESSING.value: CustomizationProcessingTemplate,
    NotificationKind.ADMIN_NEW_ORDER.value: AdminNewOrderTemplate,
}


def get_template(kind: str):
    template_cls = TEMPLATE_REGISTRY.get(kind)
    if template_cls is None:
        raise ValueError(f"No template registered for notification kind: {kind}")
    return template_cls


def render(kind: str, context: dict) -> dict:
    return get_template(kind).render(context)
