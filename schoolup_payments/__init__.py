"""
SchoolUp Payments - school fee collection over mobile money.

Parents pay fees with MTN MoMo or Airtel Money; confirmed collections are
settled into the ledger with a unique receipt, the parent gets the receipt
in their portal inbox, and the student's balance drops accordingly.
"""

__version__ = "1.0.0"
