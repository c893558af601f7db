"""
order_settlement -- Settlement amounts and the settlement ledger.

Prices waiting order lines from the SPU price table and client discount
tiers, then rolls calculated lines into immutable ledger records.

Architecture:
    order_settlement/ is a top-level package over order_kernel/.
"""
