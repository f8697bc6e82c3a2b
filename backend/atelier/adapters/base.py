"""
BaseOrderSource - the interface the sync engine uses to read upstream orders.

The sync engine never imports a platform module directly. It talks to this
interface, and the WooCommerce adapter (or a fake in tests) implements it.
Every method that talks to the network is expected to absorb transient
failures itself and report them as "nothing more" (None, empty page, end of
iteration) rather than raising.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import AsyncIterator, Dict, List, Optional, Sequence


# ---------------------------------------------------------------------------
# Platform-neutral data models
# ---------------------------------------------------------------------------

@dataclass
class PlatformAddress:
    """Billing or shipping address of an order."""
    first_name: str = ""
    last_name: str = ""
    email: Optional[str] = None
    phone: Optional[str] = None
    address_1: str = ""
    postcode: str = ""
    city: str = ""
    country: str = ""


@dataclass
class PlatformShippingLine:
    """One shipping line. meta_data holds {key, value} dicts."""
    method_id: str = ""
    method_title: str = ""
    total: Decimal = Decimal("0")
    meta_data: List[Dict] = field(default_factory=list)


@dataclass
class PlatformLineItem:
    """A purchased product line."""
    line_item_id: int
    product_id: Optional[int]
    variation_id: Optional[int]
    name: str
    quantity: int
    price: Decimal
    meta_data: List[Dict] = field(default_factory=list)


@dataclass
class PlatformOrder:
    """An order as returned by the upstream store."""
    order_id: int
    order_number: str
    status: str
    date_created: datetime
    total: Decimal
    billing: PlatformAddress
    shipping: PlatformAddress
    customer_note: str = ""
    line_items: List[PlatformLineItem] = field(default_factory=list)
    shipping_lines: List[PlatformShippingLine] = field(default_factory=list)


@dataclass
class PlatformProductDetail:
    """The two product fields the item sync needs."""
    product_id: int
    permalink: Optional[str]
    image_url: Optional[str]


@dataclass
class PlatformImage:
    """Downloaded image bytes."""
    content_type: str
    data: bytes


class BaseOrderSource(ABC):
    """
    Abstract upstream order source.

    Implementations must make every outbound call with an explicit timeout.
    """

    @property
    @abstractmethod
    def platform_name(self) -> str:
        """e.g. 'woocommerce'."""

    @abstractmethod
    async def probe_orders(self, after: Optional[datetime], statuses: Sequence[str]) -> bool:
        """
        Cheap existence check: does at least one order with one of
        ``statuses`` exist after ``after``? Returns True when unsure.
        """

    @abstractmethod
    def iter_order_pages(
        self, after: Optional[datetime], statuses: Sequence[str]
    ) -> AsyncIterator[List[PlatformOrder]]:
        """
        Yield pages of orders, newest first. Stops on a short page, or on the
        first failed page (logged) keeping what was already yielded.
        """

    @abstractmethod
    async def get_order(self, order_id: int) -> Optional[PlatformOrder]:
        """Fetch one order, None if missing or unreachable."""

    @abstractmethod
    async def get_product(self, product_id: int) -> Optional[PlatformProductDetail]:
        """Fetch permalink and first image URL of a product. Never raises."""

    @abstractmethod
    async def download_image(self, url: str) -> Optional[PlatformImage]:
        """Download an image. Never raises."""
