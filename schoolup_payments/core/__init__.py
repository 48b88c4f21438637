"""Core payment lifecycle: initiation, confirmation, settlement, balances."""
