from .health import bp as health_bp
from .ops import bp as ops_bp
from .payments import bp as payments_bp
from .reports import bp as reports_bp
from .rooms import bp as rooms_bp
from .tenants import bp as tenants_bp

BLUEPRINTS = (health_bp, rooms_bp, tenants_bp, payments_bp, reports_bp, ops_bp)
