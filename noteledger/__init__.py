"""
Confidential note ledger: an append-only commitment tree, a nullifier
double-spend guard and proof-gated mint / transfer / redeem transitions backed
by locked collateral.
"""
