from .users import router as users_router
from .catalog import router as catalog_router
from .bookings import router as bookings_router
from .payments import router as payments_router

routers = [users_router, catalog_router, bookings_router, payments_router]
