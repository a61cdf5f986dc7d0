# wmsgrn/models/__init__.py
"""
统一导出 ORM 模型。
"""

from importlib import import_module


def _export(module_name: str, class_name: str) -> None:
    module = import_module(module_name)
    globals()[class_name] = getattr(module, class_name)


MODEL_SPECS = [
    # -------- 主数据（外部维护）--------
    ("wmsgrn.models.warehouse", "Warehouse"),
    ("wmsgrn.models.vendor", "Vendor"),
    ("wmsgrn.models.item", "Item"),
    # -------- 收货 / 差异 --------
    ("wmsgrn.models.inbound", "Inbound"),
    ("wmsgrn.models.inbound", "InboundItem"),
    # -------- 退货 --------
    ("wmsgrn.models.vendor_return", "VendorReturn"),
    ("wmsgrn.models.vendor_return", "VendorReturnItem"),
    # -------- 台账 --------
    ("wmsgrn.models.stock_card", "StockCard"),
]

for _mod, _cls in MODEL_SPECS:
    _export(_mod, _cls)

__all__ = [cls for _, cls in MODEL_SPECS]
