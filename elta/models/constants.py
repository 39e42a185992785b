"""
Business Constants

Calculation defaults, monitoring thresholds and batch sizes shared by the
pricing engines and the supplier sync. All amounts are DKK excl. VAT unless
noted otherwise.
"""

# ============== Calculation Defaults ==============

HOURLY_RATES = {
    "electrician": 495,
    "apprentice": 295,
    "master": 650,
    "helper": 350,
}

MARGINS = {
    "materials": 25,
    "products": 20,
    "subcontractor": 10,
    "default_db_target": 35,
    "minimum_db": 20,
}

OVERTIME_MULTIPLIER = 1.5
WEEKEND_MULTIPLIER = 2.0
PAYMENT_TERMS_DAYS = 14

DEFAULT_TAX_RATE = 25  # Danish VAT (moms), percent
OFFER_VALIDITY_DAYS = 30
DEFAULT_CURRENCY = "DKK"


# ============== Monitoring Thresholds ==============

MARGIN_WARNING_THRESHOLD = 15
MARGIN_CRITICAL_THRESHOLD = 5
PRICE_CHANGE_OFFER_THRESHOLD = 5
PRICE_CRITICAL_CHANGE_THRESHOLD = 20
SYNC_STALE_WARNING_DAYS = 7
SYNC_STALE_CRITICAL_DAYS = 14
STALE_PRODUCT_DAYS = 14
STALE_PRODUCT_MIN_COUNT = 50


# ============== Supplier API ==============

SUPPLIER_TIMEOUT_SECONDS = 30.0
SUPPLIER_RETRY_ATTEMPTS = 3
SUPPLIER_RETRY_DELAY_SECONDS = 1.0
SUPPLIER_MAX_BACKOFF_SECONDS = 60.0
SUPPLIER_CACHE_TTL_SECONDS = 24 * 60 * 60
SUPPLIER_AUTH_TTL_SECONDS = 60 * 60

AO_BASE_URL = "https://ao.dk"
LM_BASE_URL = "https://api.lfrm.dk/v1"


# ============== Batch Processing ==============

SUPPLIER_SYNC_BATCH_SIZE = 50
MATERIAL_UPDATE_BATCH_SIZE = 10
API_CONCURRENT_REQUESTS = 5
IMPORT_PREVIEW_LIMIT = 100
IMPORT_BATCH_SIZE = 100


# ============== Electrical (DS/HD 60364) ==============

VOLTAGE_1PHASE = 230
VOLTAGE_3PHASE = 400

MAX_VOLTAGE_DROP_LIGHTING = 3
MAX_VOLTAGE_DROP_OTHER = 5
MAX_VOLTAGE_DROP_TOTAL = 4  # Danish recommendation

APPLIANCE_POWER = {
    "oven_3phase": 3600,
    "induction": 7200,
    "ev_charger_11kw": 11000,
    "ev_charger_22kw": 22000,
    "washing_machine": 2200,
    "dryer": 2500,
    "dishwasher": 2200,
    "floor_heating_per_m2": 100,
    "led_spot": 10,
    "led_ceiling": 40,
    "led_panel": 60,
    "standard_outlet": 230,
    "ventilation": 150,
}

MAX_OUTLETS_PER_CIRCUIT = 10
MAX_LIGHTS_PER_CIRCUIT = 20
RCD_STANDARD_MA = 30
RCD_FIRE_PROTECTION_MA = 300
PANEL_SPARE_CAPACITY_PERCENT = 20


# ============== Learning Engine ==============

LEARNING_MIN_SAMPLE_SIZE = 3
LEARNING_HIGH_CONFIDENCE = 0.8
LEARNING_SIGNIFICANT_VARIANCE_PERCENT = 15
LEARNING_MAX_FEEDBACK = 100
LEARNING_PROFITABILITY_THRESHOLD = 1.1  # within 10% of estimate
