from dataclasses import dataclass


@dataclass
class Constants:

    DEFAULT_CURRENCY = "usd"
    MERCHANT_DISPLAY_NAME = "Ai-Nsider"
    PAYMENT_METHOD = "Card"

    # REST paths on the storefront backend
    API_PAYMENT_INTENT_PATH = "/api/payments/intent"
    API_ORDERS_PATH = "/api/orders"
    API_ENROLLMENTS_PATH = "/api/enrollments"
    API_HEALTH_PATH = "/health"

    DEFAULT_API_URL = "http://localhost:10999"
    DEFAULT_HOST = "localhost"
    DEFAULT_PORT = 10999

    # Per-step timeouts in seconds
    DEFAULT_INTENT_TIMEOUT = 15.0
    DEFAULT_AUTHORIZATION_TIMEOUT = 300.0
    DEFAULT_ORDER_TIMEOUT = 15.0

    DEFAULT_ORDER_RETRIES = 2
    DEFAULT_ORDER_RETRY_BACKOFF = 0.5

    # Fraction of a lesson that must be watched before it counts as completed
    LESSON_COMPLETION_THRESHOLD = 0.9

    PURCHASE_HISTORY_SCREEN = "PurchaseHistory"

    # Payment references remembered per orchestrator to reject reuse
    PAYMENT_REFERENCE_HISTORY = 256

    ENV_API_URL = "STOREFRONT_API_URL"
    ENV_API_TOKEN = "STOREFRONT_API_TOKEN"
    ENV_CURRENCY = "STOREFRONT_CURRENCY"
    ENV_MERCHANT_NAME = "STOREFRONT_MERCHANT_NAME"
    ENV_INTENT_TIMEOUT = "STOREFRONT_INTENT_TIMEOUT"
    ENV_AUTHORIZATION_TIMEOUT = "STOREFRONT_AUTHORIZATION_TIMEOUT"
    ENV_ORDER_TIMEOUT = "STOREFRONT_ORDER_TIMEOUT"
    ENV_ORDER_RETRIES = "STOREFRONT_ORDER_RETRIES"
    ENV_ORDER_RETRY_BACKOFF = "STOREFRONT_ORDER_RETRY_BACKOFF"
    ENV_HOST = "STOREFRONT_HOST"
    ENV_PORT = "STOREFRONT_PORT"
