"""
Shipping carrier derivation for incoming orders.
"""

import re
from dataclasses import dataclass
from typing import Optional

from atelier.adapters.base import PlatformOrder

DHL = "DHL"
UPS = "UPS"
COLISSIMO = "Colissimo"

_FREE_SHIPPING = re.compile(r"(free|gratuit)")


@dataclass
class ShippingInfo:
    method: Optional[str]
    title: Optional[str]
    carrier: Optional[str]


def derive_shipping(order: PlatformOrder) -> ShippingInfo:
    """
    Read carrier from the first shipping line's title, id and meta values.

    Free shipping with no recognizable carrier falls back on the destination:
    France ships with UPS, everything else with DHL.
    """
    line = order.shipping_lines[0] if order.shipping_lines else None
    method_id = (line.method_id if line else "") or None
    method_title = (line.method_title if line else "") or None

    title = (method_title or "").lower()
    method = (method_id or "").lower()
    meta = " ".join(
        f"{m.get('key') or ''} {m.get('value') or ''}".lower()
        for m in (line.meta_data if line else [])
    )

    carrier = None
    if "dhl" in title or "dhl" in method or "dhl" in meta:
        carrier = DHL
    elif "ups" in title or "ups" in method or "ups" in meta:
        carrier = UPS
    elif (
        re.search(r"colissimo|la poste", title)
        or re.search(r"colissimo|laposte", method)
        or re.search(r"colissimo|la poste", meta)
    ):
        carrier = COLISSIMO

    if carrier is None and (_FREE_SHIPPING.search(title) or _FREE_SHIPPING.search(method)):
        country = (order.shipping.country or order.billing.country or "").upper()
        carrier = UPS if country == "FR" else DHL

    return ShippingInfo(method=method_id, title=method_title or method_id, carrier=carrier)
