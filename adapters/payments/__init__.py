"""결제 어댑터"""

from adapters.payments.rest_client import PaymentRestClient

__all__ = ["PaymentRestClient"]
