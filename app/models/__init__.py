# Alembic will detect models here
from .user import Profile
from .otp import OtpCode
from .auth_session import AuthSession
from .vehicle import Vehicle, VehicleDocument
from .driver import Driver
from .transaction import FleetTransaction
from .payment import PaymentOrder
from .trip import Trip
