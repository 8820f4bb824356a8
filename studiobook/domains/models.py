"""Central import of all domain models.

This file imports all models to ensure they are registered with SQLAlchemy's
metadata before any database operations (like creating tables).
"""

# Users domain
from studiobook.domains.users.models import (
    User,
    UserRole,
)

# Packages domain
from studiobook.domains.packages.models import (
    Package,
    UserPackage,
)

# Bookings domain
from studiobook.domains.bookings.models import (
    Booking,
    BookingStatus,
)

__all__ = [
    "User",
    "UserRole",
    "Package",
    "UserPackage",
    "Booking",
    "BookingStatus",
]
