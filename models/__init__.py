from .db import db
from .booking import BookingRow
