"""Domain enumerations for the produce exchange.

All enums use the (str, Enum) pattern to ensure JSON serialization compatibility.
"""

from enum import Enum


class UserRole(str, Enum):
    """Marketplace role, fixed at registration."""

    FARMER = "FARMER"
    BUYER = "BUYER"


class InteractionType(str, Enum):
    """Kind of buyer engagement recorded against a listing."""

    VIEW = "VIEW"
    CONTACT = "CONTACT"
    BOOKMARK = "BOOKMARK"


class AuditAction(str, Enum):
    """Action names written to the audit trail."""

    REGISTER = "REGISTER"
    LOGIN = "LOGIN"
    LOGOUT = "LOGOUT"
    UPDATE_PROFILE = "UPDATE_PROFILE"
    CHANGE_PASSWORD = "CHANGE_PASSWORD"
    CREATE_LISTING = "CREATE_LISTING"
    UPDATE_LISTING = "UPDATE_LISTING"
    DELETE_LISTING = "DELETE_LISTING"
    RECORD_INTERACTION = "RECORD_INTERACTION"
    SAVE_PREFERENCES = "SAVE_PREFERENCES"
    SECURITY_EVENT = "SECURITY_EVENT"


class SecurityEvent(str, Enum):
    """Security-relevant outcomes logged alongside audit rows."""

    LOGIN_SUCCESS = "LOGIN_SUCCESS"
    LOGIN_FAILED = "LOGIN_FAILED"
    REGISTRATION = "REGISTRATION"
    PASSWORD_CHANGE = "PASSWORD_CHANGE"


class Season(str, Enum):
    """Kenyan growing seasons used by the demand forecast."""

    LONG_RAINS = "long_rains"
    SHORT_RAINS = "short_rains"
    DRY_SEASON = "dry_season"


class LandUnit(str, Enum):
    """Units accepted for farm/plot size in forecasts."""

    ACRES = "acres"
    HECTARES = "hectares"


class ProfitPotential(str, Enum):
    """Coarse profitability band for a crop recommendation."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
