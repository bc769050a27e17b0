"""
Factory Boy factories for dispute test data.

Usage:
    from disputes.tests.factories import DisputeFactory

    # A new quality dispute on a confirmed, paid booking
    dispute = DisputeFactory()
"""

import factory

from bookings.tests.factories import BookingFactory
from disputes.models import Dispute, DisputeCategory, DisputeStatus


class DisputeFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = Dispute

    booking = factory.SubFactory(BookingFactory, confirmed_paid=True)
    raised_by = factory.SelfAttribute("booking.client")
    category = DisputeCategory.QUALITY
    description = "The service was not delivered as described."
    status = DisputeStatus.NEW
