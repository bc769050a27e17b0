"""
Bookings app.

Owns the booking lifecycle: services offered by freelancers, the booking
state machine, pricing, the cancellation refund policy, freelancer
reliability tracking and the expiry / auto-confirm sweeps.

Money never moves here directly; every refund or release goes through
payments.services.EscrowService.
"""
