"""SQLAlchemy ORM models for Ridepool.

All models are exported from this module for convenient imports:
    from ridepool.models import Ride, Booking

- ride.py: Ride (seat inventory owner)
- booking.py: Booking (references Ride by id)
"""

from ridepool.models.base import Base
from ridepool.models.booking import Booking
from ridepool.models.ride import Ride

__all__ = [
    "Base",
    "Ride",
    "Booking",
]
