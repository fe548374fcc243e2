"""Storefront bounded context: orders, design-file delivery and payments.

Owns the Order aggregate, the design-file catalogue, per-order download
grants and the fulfillment pipeline that decides, per purchased item, whether
existing design files can be delivered immediately or custom artwork is needed.
"""

import structlog
from protean.domain import Domain

storefront = Domain(name="storefront")

logger = structlog.get_logger(__name__)
