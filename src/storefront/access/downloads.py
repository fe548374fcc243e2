"""Download tracking: command and handler.

A customer download must go through an active grant, for an active design
file, before the order's download window closes.
"""

from protean import handle
from protean.exceptions import ObjectNotFoundError, ValidationError
from protean.fields import Identifier
from protean.utils.globals import current_domain

from storefront.access.order_design_file import OrderDesignFile
from storefront.catalogue.design_file import DesignFile
from storefront.domain import storefront
from storefront.order.order import Order


@storefront.command(part_of="OrderDesignFile")
class RecordDownload:
    order_id = Identifier(required=True)
    design_file_id = Identifier(required=True)


@storefront.command_handler(part_of=OrderDesignFile)
class DownloadCommandHandler:
    @handle(RecordDownload)
    def record_download(self, command):
        grant_repo = current_domain.repository_for(OrderDesignFile)
        grant = grant_repo.find_grant(command.order_id, command.design_file_id)
        if grant is None:
            raise ObjectNotFoundError(
                f"Order {command.order_id} has no access to design file {command.design_file_id}"
            )

        design_file = current_domain.repository_for(DesignFile).get(command.design_file_id)
        if not design_file.is_active:
            raise ValidationError({"design_file_id": ["Design file is no longer available"]})

        order = current_domain.repository_for(Order).get(command.order_id)
        grant.record_download(order.download_expiry)
        grant_repo.add(grant)
        return {
            "file_url": design_file.file_url,
            "file_name": design_file.file_name,
            "download_count": grant.download_count,
        }
