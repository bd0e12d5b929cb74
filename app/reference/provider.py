from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

from .models import ColEntry, FxQuote

if TYPE_CHECKING:
    from app.services.provenance import LookupLedger


class FxRateSource(Protocol):
    def get_quote(self, base: str, quote: str, ledger: "LookupLedger") -> FxQuote | None:
        """Return a quote converting one unit of base into quote, or None when unavailable."""


class CostOfLivingSource(Protocol):
    version: str
    as_of: str

    def lookup_city(self, iso: str, city: str) -> ColEntry | None:
        """Return the city-level entry, or None when the table has no coverage."""

    def lookup_admin_area(self, iso: str, admin_area: str) -> ColEntry | None:
        """Return the admin-area-level entry, or None when the table has no coverage."""

    def lookup_country(self, iso: str) -> ColEntry | None:
        """Return the country-level entry, or None when the table has no coverage."""
