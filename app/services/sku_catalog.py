"""
Master SKU catalog (data/sku.json).

Each entry:
    {"MasterSKU": "...", "itemName": "...", "marketingKeyword": "...", "cogs": 120, "sdCost": 40,
     "variants": [{"cogs": 120, "sdCost": 40,
                   "variantSkus": [{"storeName": "Shopify", "variant_sku": "..."}, ...]}]}

cogs / sdCost are per-unit and optional; a variant's value overrides the product's.
"""
import json
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Any, Optional

from loguru import logger

from app.core.config import get_settings
from app.sync_utils import safe_float

STORE_AMAZON = "Amazon"
STORE_SHOPIFY = "Shopify"


@dataclass(frozen=True)
class UnitCost:
    cogs: float = 0.0
    sd_cost: float = 0.0


class SkuCatalog:
    def __init__(self, products: list[dict[str, Any]]):
        self.products = products
        self._by_master = {p.get("MasterSKU"): p for p in products if p.get("MasterSKU")}
        self._unit_costs = self._build_unit_costs(products)

    @classmethod
    def from_file(cls, path: str | Path) -> "SkuCatalog":
        path = Path(path)
        if not path.exists():
            logger.warning(f"SKU catalog not found at {path}, using an empty catalog")
            return cls([])
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
        if not isinstance(data, list):
            raise ValueError(f"SKU catalog {path} must be a JSON list")
        logger.info(f"SKU catalog loaded: {len(data)} products from {path}")
        return cls(data)

    @staticmethod
    def _build_unit_costs(products: list[dict[str, Any]]) -> dict[str, UnitCost]:
        costs: dict[str, UnitCost] = {}
        for product in products:
            for variant in product.get("variants") or []:
                cogs = variant.get("cogs", product.get("cogs"))
                sd_cost = variant.get("sdCost", product.get("sdCost"))
                if cogs is None and sd_cost is None:
                    continue
                cost = UnitCost(safe_float(cogs), safe_float(sd_cost))
                for entry in variant.get("variantSkus") or []:
                    sku = entry.get("variant_sku")
                    if sku:
                        costs[str(sku).lower()] = cost
        return costs

    def find_product(self, master_sku: str) -> Optional[dict[str, Any]]:
        return self._by_master.get(master_sku)

    @staticmethod
    def variant_skus(product: dict[str, Any], store_name: str) -> list[str]:
        skus = []
        for variant in product.get("variants") or []:
            for entry in variant.get("variantSkus") or []:
                if entry.get("storeName") == store_name and entry.get("variant_sku"):
                    skus.append(entry["variant_sku"])
        return skus

    def amazon_variant_skus(self, product: dict[str, Any]) -> list[str]:
        """Amazon variant SKUs, falling back to the Shopify ones."""
        return self.variant_skus(product, STORE_AMAZON) or self.variant_skus(product, STORE_SHOPIFY)

    def unit_cost(self, sku: Optional[str]) -> Optional[UnitCost]:
        if not sku:
            return None
        return self._unit_costs.get(str(sku).lower())

    def product_unit_cost(self, product: dict[str, Any]) -> Optional[UnitCost]:
        """Product-level per-unit cost, or the first variant that declares one."""
        if product.get("cogs") is not None or product.get("sdCost") is not None:
            return UnitCost(safe_float(product.get("cogs")), safe_float(product.get("sdCost")))
        for variant in product.get("variants") or []:
            if variant.get("cogs") is not None or variant.get("sdCost") is not None:
                return UnitCost(safe_float(variant.get("cogs")), safe_float(variant.get("sdCost")))
        return None


@lru_cache
def get_sku_catalog() -> SkuCatalog:
    return SkuCatalog.from_file(get_settings().SKU_CATALOG_PATH)
