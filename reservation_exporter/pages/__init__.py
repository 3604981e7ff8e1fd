"""Page Object Model for the partner portal."""
from .base_page import BasePage
from .login_page import LoginPage
from .properties_page import PropertiesPage
from .reservation_dialog import ReservationDialog
from .reservations_page import ReservationsPage

__all__ = ['BasePage', 'LoginPage', 'PropertiesPage', 'ReservationDialog', 'ReservationsPage']
