"""
Read interface to the backing card datastore, plus an in-memory implementation
loaded from a JSON seed document.

Records use the datastore's column names (snake_case). Card lookups return the
card row with its owning business joined under the "business" key; cards whose
business row is missing are treated as absent, like an inner join.
"""

import asyncio
import copy
import json
import logging
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Protocol

logger = logging.getLogger(__name__)

Record = Dict[str, Any]


class CardDatastore(Protocol):
    async def fetch_stamp_card(self, card_id: str) -> Optional[Record]:
        ...

    async def fetch_membership_card(self, card_id: str) -> Optional[Record]:
        ...

    async def fetch_customer_progress(self, card_id: str, customer_id: str) -> Optional[Record]:
        """
        Return {"customer": {...}, "current_stamps" | "sessions_used", "expiry_date"}
        for the card/customer pair, or None when the customer has not joined the card.
        """
        ...


class InMemoryCardDatastore:
    """Datastore backed by plain dictionaries. Used for local runs and tests."""

    def __init__(self,
                 businesses: Iterable[Record] = (),
                 stamp_cards: Iterable[Record] = (),
                 membership_cards: Iterable[Record] = (),
                 customers: Iterable[Record] = (),
                 customer_cards: Iterable[Record] = (),
                 latency: float = 0.0):
        self.businesses: Dict[str, Record] = {str(b["id"]): dict(b) for b in businesses}
        self.stamp_cards: Dict[str, Record] = {str(c["id"]): dict(c) for c in stamp_cards}
        self.membership_cards: Dict[str, Record] = {str(c["id"]): dict(c) for c in membership_cards}
        self.customers: Dict[str, Record] = {str(c["id"]): dict(c) for c in customers}
        self.customer_cards: List[Record] = [dict(cc) for cc in customer_cards]
        # Simulated I/O delay in seconds
        self.latency = latency

    @classmethod
    def from_dict(cls, seed: Dict[str, Any], latency: float = 0.0) -> "InMemoryCardDatastore":
        return cls(
            businesses=seed.get("businesses", []),
            stamp_cards=seed.get("stamp_cards", []),
            membership_cards=seed.get("membership_cards", []),
            customers=seed.get("customers", []),
            customer_cards=seed.get("customer_cards", []),
            latency=latency,
        )

    @classmethod
    def from_json_file(cls, path: str) -> "InMemoryCardDatastore":
        """Load a seed document with businesses/stamp_cards/membership_cards/customers/customer_cards lists"""
        seed_path = Path(path)
        if not seed_path.is_file():
            raise FileNotFoundError(f"Datastore seed file not found: {seed_path}")

        try:
            seed = json.loads(seed_path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid datastore seed file {seed_path}: {e}")

        store = cls.from_dict(seed)
        logger.info(
            f"Loaded datastore seed {seed_path}: {len(store.stamp_cards)} stamp cards, "
            f"{len(store.membership_cards)} membership cards, {len(store.customers)} customers"
        )
        return store

    async def _io(self) -> None:
        await asyncio.sleep(self.latency)

    def _join_business(self, card: Optional[Record]) -> Optional[Record]:
        if card is None:
            return None
        business = self.businesses.get(str(card.get("business_id")))
        if business is None:
            logger.warning(f"Card {card.get('id')} has no business row, skipping")
            return None
        joined = copy.deepcopy(card)
        joined["business"] = copy.deepcopy(business)
        return joined

    async def fetch_stamp_card(self, card_id: str) -> Optional[Record]:
        await self._io()
        return self._join_business(self.stamp_cards.get(str(card_id)))

    async def fetch_membership_card(self, card_id: str) -> Optional[Record]:
        await self._io()
        return self._join_business(self.membership_cards.get(str(card_id)))

    async def fetch_customer_progress(self, card_id: str, customer_id: str) -> Optional[Record]:
        await self._io()
        card_id = str(card_id)
        customer_id = str(customer_id)

        customer = self.customers.get(customer_id)
        if customer is None:
            return None

        for link in self.customer_cards:
            if str(link.get("customer_id")) != customer_id:
                continue
            if card_id not in (str(link.get("stamp_card_id")), str(link.get("membership_card_id"))):
                continue
            return {
                "customer": copy.deepcopy(customer),
                "current_stamps": link.get("current_stamps"),
                "sessions_used": link.get("sessions_used"),
                "expiry_date": link.get("expiry_date"),
            }
        return None
