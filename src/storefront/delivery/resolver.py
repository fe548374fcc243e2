"""Delivery Resolver: decides, per order item, whether design files can ship now.

Classification per item:

1. Product does not support customization (snapshot on the item):
   colour selections → every selected colour needs at least one active
   colour-variant file, otherwise the item awaits custom work naming the
   missing colours; no colours → general files, or custom work if none exist.
2. Product supports customization and the customer supplied real
   customization (text, images, logo or notes) → custom work, always.
3. Otherwise → same lookup as (1).

The resolver only reads the design-file catalogue. A failing lookup never
turns into an auto-delivery: the failing item and every item after it are
sent to custom work for human review.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Protocol

import structlog

from storefront.catalogue.design_file import normalize_hex

logger = structlog.get_logger(__name__)

REASON_CUSTOM_WORK = "Requires custom work: customer supplied customization data"
REASON_NO_FILES = "No files available for this product"
REASON_LOOKUP_FAILED = "Design file lookup failed; manual review required"


class DeliveryType(Enum):
    AUTO_DELIVERY = "auto_delivery"
    CUSTOM_WORK = "custom_work"


class CatalogLookupError(Exception):
    """The design-file catalogue could not answer a query."""


class DesignFileCatalog(Protocol):
    def find_files(self, product_id: str, is_color_variant: bool, color_variant_hex: str | None = None) -> list: ...


@dataclass(frozen=True)
class MatchedFile:
    design_file_id: str
    file_name: str
    file_url: str
    file_type: str | None = None

    @classmethod
    def from_design_file(cls, design_file) -> "MatchedFile":
        return cls(
            design_file_id=str(design_file.id),
            file_name=design_file.file_name,
            file_url=design_file.file_url,
            file_type=design_file.file_type,
        )


@dataclass(frozen=True)
class ItemVerdict:
    item_index: int
    product_id: str
    product_name: str
    auto_deliverable: bool
    reason: str
    files: tuple[MatchedFile, ...] = ()
    has_real_customization: bool = False
    lookup_failed: bool = False


@dataclass(frozen=True)
class DeliveryVerdict:
    delivery_type: DeliveryType
    requires_custom_work: bool
    items: tuple[ItemVerdict, ...] = field(default_factory=tuple)

    @property
    def auto_items(self) -> list[ItemVerdict]:
        return [v for v in self.items if v.auto_deliverable]

    @property
    def custom_items(self) -> list[ItemVerdict]:
        return [v for v in self.items if not v.auto_deliverable]

    @property
    def files(self) -> list[MatchedFile]:
        """Every file to grant, de-duplicated across items, in first-seen order."""
        seen: dict[str, MatchedFile] = {}
        for verdict in self.auto_items:
            for f in verdict.files:
                seen.setdefault(f.design_file_id, f)
        return list(seen.values())

    @property
    def is_partial(self) -> bool:
        return self.delivery_type == DeliveryType.AUTO_DELIVERY and self.requires_custom_work


def aggregate_verdicts(items: list[ItemVerdict]) -> DeliveryVerdict:
    """Fold per-item verdicts into the order-level verdict."""
    if not items:
        return DeliveryVerdict(DeliveryType.CUSTOM_WORK, requires_custom_work=True, items=())

    auto_count = sum(1 for v in items if v.auto_deliverable)
    if auto_count == len(items):
        return DeliveryVerdict(DeliveryType.AUTO_DELIVERY, requires_custom_work=False, items=tuple(items))
    if auto_count == 0:
        return DeliveryVerdict(DeliveryType.CUSTOM_WORK, requires_custom_work=True, items=tuple(items))
    return DeliveryVerdict(DeliveryType.AUTO_DELIVERY, requires_custom_work=True, items=tuple(items))


class DeliveryResolver:
    def __init__(self, catalog: DesignFileCatalog):
        self.catalog = catalog

    def classify(self, order) -> DeliveryVerdict:
        verdicts: list[ItemVerdict] = []
        items = order.sorted_items()

        for position, item in enumerate(items):
            try:
                verdicts.append(self.classify_item(item))
            except Exception as exc:
                # Anything left unclassified becomes custom work, never auto-delivery.
                logger.warning(
                    "design_file_lookup_failed"
                    if isinstance(exc, CatalogLookupError)
                    else "item_classification_failed",
                    order_id=str(order.id),
                    item_index=item.position,
                    remaining_items=len(items) - position,
                    error=str(exc),
                    exc_info=not isinstance(exc, CatalogLookupError),
                )
                verdicts.extend(self._degraded(remaining) for remaining in items[position:])
                break

        verdict = aggregate_verdicts(verdicts)
        logger.debug(
            "order_classified",
            order_id=str(order.id),
            delivery_type=verdict.delivery_type.value,
            requires_custom_work=verdict.requires_custom_work,
            auto_items=len(verdict.auto_items),
            custom_items=len(verdict.custom_items),
        )
        return verdict

    def classify_item(self, item) -> ItemVerdict:
        real_customization = item.has_real_customization()
        if item.enable_customizations and real_customization:
            return ItemVerdict(
                item_index=item.position,
                product_id=str(item.product_id),
                product_name=item.product_name,
                auto_deliverable=False,
                reason=REASON_CUSTOM_WORK,
                has_real_customization=True,
            )
        return self._resolve_from_catalog(item, real_customization)

    # -------------------------------------------------------------------
    # Catalogue lookups
    # -------------------------------------------------------------------
    def _resolve_from_catalog(self, item, real_customization: bool) -> ItemVerdict:
        colors = item.color_choices()
        if colors:
            return self._resolve_colors(item, colors, real_customization)

        general = self._find(item.product_id, is_color_variant=False)
        if not general:
            return self._verdict(item, False, REASON_NO_FILES, real_customization=real_customization)
        return self._verdict(
            item,
            True,
            f"{len(general)} general file(s) delivered",
            files=general,
            real_customization=real_customization,
        )

    def _resolve_colors(self, item, colors: list[dict], real_customization: bool) -> ItemVerdict:
        matched: dict[str, MatchedFile] = {}
        missing: list[str] = []

        for color in colors:
            hex_value = normalize_hex(color.get("hex"))
            files = self._find(item.product_id, is_color_variant=True, color_variant_hex=hex_value) if hex_value else []
            if not files:
                missing.append(str(color.get("name") or color.get("hex") or "unnamed colour"))
                continue
            for f in files:
                matched.setdefault(f.design_file_id, f)

        if missing:
            return self._verdict(
                item,
                False,
                f"No files available for colour(s): {', '.join(missing)}",
                real_customization=real_customization,
            )
        return self._verdict(
            item,
            True,
            f"{len(matched)} colour variant file(s) delivered for {len(colors)} colour(s)",
            files=list(matched.values()),
            real_customization=real_customization,
        )

    def _find(self, product_id, is_color_variant: bool, color_variant_hex: str | None = None) -> list[MatchedFile]:
        try:
            found = self.catalog.find_files(
                str(product_id),
                is_color_variant=is_color_variant,
                color_variant_hex=color_variant_hex,
            )
        except Exception as exc:
            raise CatalogLookupError(f"find_files failed for product {product_id}: {exc}") from exc
        return [MatchedFile.from_design_file(f) for f in found]

    # -------------------------------------------------------------------
    # Verdict builders
    # -------------------------------------------------------------------
    @staticmethod
    def _verdict(item, auto_deliverable: bool, reason: str, files=(), real_customization: bool = False) -> ItemVerdict:
        return ItemVerdict(
            item_index=item.position,
            product_id=str(item.product_id),
            product_name=item.product_name,
            auto_deliverable=auto_deliverable,
            reason=reason,
            files=tuple(files) if auto_deliverable else (),
            has_real_customization=real_customization,
        )

    @staticmethod
    def _degraded(item) -> ItemVerdict:
        return ItemVerdict(
            item_index=item.position,
            product_id=str(item.product_id),
            product_name=item.product_name,
            auto_deliverable=False,
            reason=REASON_LOOKUP_FAILED,
            has_real_customization=item.has_real_customization(),
            lookup_failed=True,
        )
