from enum import Enum


class ModuleKey(str, Enum):
    INVENTORY = "INVENTORY"
    LOCATIONS = "LOCATIONS"
    PURCHASE_ORDERS = "PURCHASE_ORDERS"
    ASNS = "ASNS"
    SALES_ORDERS = "SALES_ORDERS"
    PICKING = "PICKING"


MODULE_DEFINITIONS: list[tuple[ModuleKey, str]] = [
    (ModuleKey.INVENTORY, "Inventory"),
    (ModuleKey.LOCATIONS, "Locations"),
    (ModuleKey.PURCHASE_ORDERS, "Purchase Orders"),
    (ModuleKey.ASNS, "Shipping Notices"),
    (ModuleKey.SALES_ORDERS, "Sales Orders"),
    (ModuleKey.PICKING, "Picking"),
]

MODULE_KEYS: list[str] = [module_key.value for module_key, _ in MODULE_DEFINITIONS]
MODULE_KEY_SET: set[str] = set(MODULE_KEYS)
