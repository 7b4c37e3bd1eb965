from govcar.models.driver import Driver
from govcar.models.vehicle import Vehicle
from govcar.models.booking import Booking

__all__ = ["Driver", "Vehicle", "Booking"]
