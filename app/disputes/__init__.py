"""
Disputes app.

A client can raise one dispute per booking shortly after the service.
While it is open the auto-confirm sweep leaves the booking's escrow alone;
an admin then resolves it by refunding, partially refunding, releasing or
doing nothing, through the same escrow and payout services every other
flow uses.
"""
