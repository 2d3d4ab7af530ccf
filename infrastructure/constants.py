"""
Constants Module - Centralized configuration values
===================================================

PURPOSE: Single source of truth for the booking platform wire contract
PATTERN: Modular constants organized by category
SCOPE: Application-wide configuration values

Parameter names and paths mirror what the platform's own web client sends.
The platform is undocumented, so none of these should be "tidied up".
"""

# Platform endpoints
DEFAULT_BASE_URL = "https://box.resawod.com"
COOKIE_CHECKER_PATH = "/web/cookieChecker.php"
LOGIN_PATH = "/web/ajax/users/checkUser.php"
ACTIVITIES_CALENDAR_PATH = "/web/ajax/activities/getActivitiesCalendar.php"
BOOK_PATH = "/web/ajax/bookings/bookBookings.php"
CATEGORIES_PATH = "/web/ajax/activities/getCategoriesActivities.php"

# Browser-identifying header set sent with every call
BROWSER_USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10.15; rv:147.0) "
    "Gecko/20100101 Firefox/147.0"
)
BROWSER_HEADERS = {
    "User-Agent": BROWSER_USER_AGENT,
    "Accept": "application/json, text/javascript, */*; q=0.01",
    "Accept-Language": "fr-FR,fr;q=0.9,en-US;q=0.8,en;q=0.7",
    "X-Requested-With": "XMLHttpRequest",
}

# Booking form constants (bookBookings.php)
BOOKING_FORM_DEFAULTS = {
    "unit_price": "0",
    "n_guests": "0",
    "id_resource": "false",
    "discount_code": "false",
    "form": "",
    "formIntoNotes": "",
}
BOOKING_SLOT_FIELD = "items[activities][0][id_activity_calendar]"

# Response patterns (platform answers in French or Spanish depending on the gym)
CAPACITY_PATTERNS = (
    'complet',
    'full',
    'no quedan plazas',
    'no hay plazas',
    'plus de place',
    'aucune place',
    'liste d\'attente',
    'lista de espera',
    'waiting list',
)
ALREADY_BOOKED_PATTERNS = (
    'déjà inscrit',
    'deja inscrit',
    'déjà réservé',
    'already booked',
    'ya estás inscrito',
    'ya tienes',
)
AUTH_FAILURE_PATTERNS = (
    'session',
    'connect',
    'identifi',
    'login',
    'mot de passe',
    'password',
    'contraseña',
)

# Session handling
MAX_CONSECUTIVE_AUTH_FAILURES = 2
LOGIN_RETRY_COOLDOWN_SECONDS = 30.0

# Scheduling
DEFAULT_TIMEZONE = "Europe/Paris"
BOOKING_WINDOW_DAYS = 7  # Slots open one week ahead
BOOKING_WINDOW_OFFSET_MINUTES = 1  # ... one minute after the slot time
CYCLE_INTERVAL_SECONDS = 60
WAITLIST_POLL_INTERVAL_SECONDS = 180
CYCLE_TASK_TIMEOUT_SECONDS = 120.0
MAX_CONCURRENT_REQUESTS = 4
ATTEMPT_HISTORY_SIZE = 10

# Retry policy for transient faults
MAX_BOOKING_ATTEMPTS = 3
RETRY_BASE_DELAY_SECONDS = 1.0
RETRY_BACKOFF_FACTOR = 2.0
RETRY_MAX_DELAY_SECONDS = 30.0
HTTP_TIMEOUT_SECONDS = 15.0

WEEKDAYS_EN = ['monday', 'tuesday', 'wednesday', 'thursday', 'friday', 'saturday', 'sunday']
WEEKDAYS_FR = ['lundi', 'mardi', 'mercredi', 'jeudi', 'vendredi', 'samedi', 'dimanche']
