"""
Marketplace Services

Identity -> Catalog -> Ledger, with the Asset Pipeline invoked by Catalog
on upload. Every operation takes the caller's account explicitly.
"""

from .identity import IdentityService, AuthResult
from .catalog import CatalogService, TrackFilters, can_mutate_track
from .ledger import LedgerService, PurchaseIntent, EarningsSummary, compute_fee_split
from .payment_gateway import PaymentGateway, SimulatedPaymentGateway, PaymentIntent, PaymentOutcome
from .asset_pipeline import AssetJobRunner, probe_duration, extract_preview
from .pagination import Page

__all__ = [
    'IdentityService',
    'AuthResult',
    'CatalogService',
    'TrackFilters',
    'can_mutate_track',
    'LedgerService',
    'PurchaseIntent',
    'EarningsSummary',
    'compute_fee_split',
    'PaymentGateway',
    'SimulatedPaymentGateway',
    'PaymentIntent',
    'PaymentOutcome',
    'AssetJobRunner',
    'probe_duration',
    'extract_preview',
    'Page',
]
