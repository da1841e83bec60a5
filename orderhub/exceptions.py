"""
Domain errors for result webhook delivery.

Configuration errors are the caller's problem and are never retried;
transport failures never surface as exceptions (see DeliveryOutcome).
"""


class WebhookError(Exception):
    """Base class for webhook delivery errors."""


class WebhookConfigurationError(WebhookError):
    """The customer/order cannot receive a callback as configured."""


class CustomerNotFoundError(WebhookConfigurationError):
    def __init__(self, customer_id: str):
        super().__init__(f"Customer not found: {customer_id}")
        self.customer_id = customer_id


class OrderNotFoundError(WebhookConfigurationError):
    def __init__(self, order_id: str):
        super().__init__(f"Order not found: {order_id}")
        self.order_id = order_id


class CallbacksDisabledError(WebhookConfigurationError):
    def __init__(self, customer_id: str):
        super().__init__(f"Webhook notifications disabled for customer {customer_id}")
        self.customer_id = customer_id


class InvalidWebhookUrlError(WebhookConfigurationError):
    def __init__(self, url: str | None, reason: str):
        super().__init__(f"Invalid webhook URL {url!r}: {reason}")
        self.url = url


class DeliveryNotFoundError(WebhookError):
    def __init__(self, delivery_id: str):
        super().__init__(f"Webhook delivery not found: {delivery_id}")
        self.delivery_id = delivery_id
