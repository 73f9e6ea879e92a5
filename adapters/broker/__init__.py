"""브로커 어댑터"""

from adapters.broker.rest_client import BrokerRestClient

__all__ = ["BrokerRestClient"]
