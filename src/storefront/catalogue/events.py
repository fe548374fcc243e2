"""Domain events for the DesignFile aggregate."""

from protean.fields import Boolean, DateTime, Identifier, String

from storefront.domain import storefront


@storefront.event(part_of="DesignFile")
class DesignFileRegistered:
    """A deliverable design file was attached to a product."""

    __version__ = 1

    design_file_id: Identifier(required=True)
    product_id: Identifier(required=True)
    file_name: String(required=True)
    file_type: String(required=True)
    is_color_variant: Boolean(default=False)
    color_variant_hex: String()
    is_for_order: Boolean(default=False)
    order_id: Identifier()
    registered_at: DateTime(required=True)


@storefront.event(part_of="DesignFile")
class DesignFileDeactivated:
    """A design file was soft-deleted and no longer matches catalogue lookups."""

    __version__ = 1

    design_file_id: Identifier(required=True)
    product_id: Identifier(required=True)
    deactivated_at: DateTime(required=True)
