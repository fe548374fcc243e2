"""Design-file registration and soft deletion: commands and handler."""

from protean import handle
from protean.fields import Boolean, Identifier, Integer, String, Text
from protean.utils.globals import current_domain

from storefront.catalogue.design_file import DesignFile
from storefront.domain import storefront


@storefront.command(part_of="DesignFile")
class RegisterDesignFile:
    """Attach an uploaded asset to a product (or to a single order)."""

    product_id = Identifier(required=True)
    file_name = String(required=True, max_length=255)
    file_url = String(required=True, max_length=1000)
    file_type = String(required=True, max_length=10)
    file_size = Integer(default=0)
    mime_type = String(max_length=100)
    description = Text()
    is_color_variant = Boolean(default=False)
    color_variant_hex = String(max_length=7)
    is_for_order = Boolean(default=False)
    order_id = Identifier()
    created_by = String(max_length=255)


@storefront.command(part_of="DesignFile")
class DeactivateDesignFile:
    design_file_id = Identifier(required=True)


@storefront.command_handler(part_of=DesignFile)
class DesignFileCommandHandler:
    @handle(RegisterDesignFile)
    def register_design_file(self, command):
        design_file = DesignFile.register(
            product_id=command.product_id,
            file_name=command.file_name,
            file_url=command.file_url,
            file_type=command.file_type,
            file_size=command.file_size,
            mime_type=command.mime_type,
            description=command.description,
            is_color_variant=command.is_color_variant,
            color_variant_hex=command.color_variant_hex,
            is_for_order=command.is_for_order,
            order_id=command.order_id,
            created_by=command.created_by,
        )
        current_domain.repository_for(DesignFile).add(design_file)
        return str(design_file.id)

    @handle(DeactivateDesignFile)
    def deactivate_design_file(self, command):
        repo = current_domain.repository_for(DesignFile)
        design_file = repo.get(command.design_file_id)
        design_file.deactivate()
        repo.add(design_file)
