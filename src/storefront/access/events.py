"""Domain events for download grants."""

from protean.fields import DateTime, Identifier, Integer

from storefront.domain import storefront


@storefront.event(part_of="OrderDesignFile")
class DesignFileAccessGranted:
    """An order was given download access to a design file."""

    __version__ = 1

    grant_id = Identifier(required=True)
    order_id = Identifier(required=True)
    design_file_id = Identifier(required=True)
    granted_at = DateTime(required=True)


@storefront.event(part_of="OrderDesignFile")
class DesignFileDownloaded:
    __version__ = 1

    grant_id = Identifier(required=True)
    order_id = Identifier(required=True)
    design_file_id = Identifier(required=True)
    download_count = Integer(required=True)
    downloaded_at = DateTime(required=True)
