"""Inventory ledger for merchandise variants.

Every unit leaving a variant's stock is backed by a reservation. A
reservation is resolved exactly once: finalized (units sold), released
(units back in stock) or returned (sold units back in stock after a
cancellation). For every variant ``stock + sold + held`` stays equal to
the initial stock plus restocks.

The ledger never reads a counter and writes it back. Each operation is
a single conditional step in the event store.
"""

import structlog

from festival.domain.entities import Reservation
from festival.domain.exceptions import ReservationNotFoundError
from festival.infrastructure.stores import EventStore, get_event_store

logger = structlog.get_logger()


class InventoryLedger:
    """Reserve, finalize, release and return merchandise units."""

    def __init__(
        self,
        event_store: EventStore | None = None,
        request_id: str | None = None,
    ) -> None:
        """Initialize the ledger.

        Args:
            event_store: Store holding variant counters and reservations.
            request_id: Request ID for correlation.
        """
        self.event_store = event_store or get_event_store()
        self.request_id = request_id

    async def reserve(self, event_id: str, variant_id: str, quantity: int) -> Reservation:
        """Hold units of a variant until payment is decided.

        Args:
            event_id: Merchandise event.
            variant_id: Variant to take units from.
            quantity: Units to hold.

        Returns:
            Held reservation.

        Raises:
            InsufficientStockError: Fewer than ``quantity`` units in stock.
            VariantNotFoundError: Unknown variant.
        """
        reservation = await self.event_store.reserve_stock(event_id, variant_id, quantity)
        logger.info(
            "Stock reserved",
            reservation_id=reservation.id,
            event_id=event_id,
            variant_id=variant_id,
            quantity=quantity,
            request_id=self.request_id,
        )
        return reservation

    async def credit_immediate(self, event_id: str, variant_id: str, quantity: int) -> Reservation:
        """Sell units directly, without a payment step.

        Returns:
            Finalized reservation.

        Raises:
            InsufficientStockError: Fewer than ``quantity`` units in stock.
            VariantNotFoundError: Unknown variant.
        """
        reservation = await self.event_store.credit_stock(event_id, variant_id, quantity)
        logger.info(
            "Stock credited",
            reservation_id=reservation.id,
            event_id=event_id,
            variant_id=variant_id,
            quantity=quantity,
            request_id=self.request_id,
        )
        return reservation

    async def finalize(self, reservation: Reservation | str) -> Reservation:
        """Turn held units into sold units.

        Raises:
            AlreadyFinalizedError: The reservation was already finalized.
            ReservationReleasedError: The reservation was released.
            ReservationNotFoundError: Unknown reservation.
        """
        reservation_id = _reservation_id(reservation)
        finalized = await self.event_store.finalize_reservation(reservation_id)
        logger.info(
            "Reservation finalized",
            reservation_id=reservation_id,
            variant_id=finalized.variant_id,
            quantity=finalized.quantity,
            request_id=self.request_id,
        )
        return finalized

    async def release(self, reservation: Reservation | str) -> Reservation:
        """Put held units back into stock.

        Releasing a released reservation does nothing.

        Raises:
            AlreadyFinalizedError: The reservation was finalized.
            ReservationNotFoundError: Unknown reservation.
        """
        reservation_id = _reservation_id(reservation)
        released = await self.event_store.release_reservation(reservation_id)
        logger.info(
            "Reservation released",
            reservation_id=reservation_id,
            variant_id=released.variant_id,
            quantity=released.quantity,
            request_id=self.request_id,
        )
        return released

    async def return_units(self, reservation: Reservation | str) -> Reservation:
        """Give a cancelled purchase's units back to stock.

        Held units are released, sold units move from ``sold`` back to
        ``stock``. Already released or returned reservations are left
        untouched.
        """
        reservation_id = _reservation_id(reservation)
        returned = await self.event_store.return_reservation(reservation_id)
        logger.info(
            "Reservation units returned",
            reservation_id=reservation_id,
            status=returned.status.value,
            quantity=returned.quantity,
            request_id=self.request_id,
        )
        return returned

    async def get(self, reservation_id: str) -> Reservation:
        """Get a reservation or raise ReservationNotFoundError."""
        reservation = await self.event_store.get_reservation(reservation_id)
        if reservation is None:
            raise ReservationNotFoundError(reservation_id)
        return reservation


def _reservation_id(reservation: Reservation | str) -> str:
    return reservation if isinstance(reservation, str) else reservation.id
