from boardinghouse.extensions import db

# Core Models
from .user import User
from .room import Room, room_tenants
from .tenant import Tenant
from .payment import Payment
from .notification import Notification, Announcement
from .report import Report
