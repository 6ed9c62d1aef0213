"""Tax lot tracking and holding-period rules.

Provides short/long-term classification, ESPP qualifying-disposition checks,
tax lot creation and sale matching, and unrealized-gain tax analytics.
"""

from .espp import (
    DispositionCheck,
    DispositionReason,
    add_years,
    bargain_element,
    check_disposition_status,
    is_disqualifying_disposition,
    tax_implication_message,
)
from .holding_period import (
    LONG_TERM_THRESHOLD_DAYS,
    HoldingPeriod,
    classify_holding_period,
    days_until_long_term,
    holding_days,
    long_term_threshold_date,
)
from .lots import (
    AgingLot,
    HarvestingOpportunity,
    LotGain,
    LotMatchingMethod,
    LotType,
    SaleAllocation,
    TaxAnalysis,
    TaxLot,
    TaxRates,
    allocate_sale,
    analyze_lot,
    apply_split,
    create_lot,
    detect_aging_lots,
    estimate_tax_liability,
    find_tax_loss_harvesting,
    order_lots_for_sale,
    unrealized_gains_by_lot,
)

__all__ = [
    # espp
    "DispositionCheck",
    "DispositionReason",
    "add_years",
    "bargain_element",
    "check_disposition_status",
    "is_disqualifying_disposition",
    "tax_implication_message",
    # holding_period
    "LONG_TERM_THRESHOLD_DAYS",
    "HoldingPeriod",
    "classify_holding_period",
    "days_until_long_term",
    "holding_days",
    "long_term_threshold_date",
    # lots
    "AgingLot",
    "HarvestingOpportunity",
    "LotGain",
    "LotMatchingMethod",
    "LotType",
    "SaleAllocation",
    "TaxAnalysis",
    "TaxLot",
    "TaxRates",
    "allocate_sale",
    "analyze_lot",
    "apply_split",
    "create_lot",
    "detect_aging_lots",
    "estimate_tax_liability",
    "find_tax_loss_harvesting",
    "order_lots_for_sale",
    "unrealized_gains_by_lot",
]
