import logging
import uuid
from decimal import Decimal

import requests
from django.conf import settings
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

logger = logging.getLogger(__name__)


class PayPalClient:

    def __init__(self, base_url=None, client_id=None, secret=None, timeout=None, session=None):
        self.base_url = (base_url or getattr(settings, 'PAYPAL_URL', 'https://api-m.sandbox.paypal.com')).rstrip('/')
        self.client_id = client_id if client_id is not None else getattr(settings, 'PAYPAL_CLIENT_ID', '')
        self.secret = secret if secret is not None else getattr(settings, 'PAYPAL_SECRET', '')
        self.timeout = timeout or getattr(settings, 'PAYPAL_TIMEOUT', 10)

        self.is_mock = not self.client_id or not self.secret

        self.session = session or requests.Session()
        self._configure_session()

        if self.is_mock:
            logger.warning("⚠️ PayPal credentials missing, running in MOCK PAYMENT MODE")

    def _configure_session(self):
        retry_strategy = Retry(
            total=2,
            backoff_factor=0.5,
            status_forcelist=[429, 500, 502, 503, 504],
            allowed_methods=["POST", "GET"],
        )
        adapter = HTTPAdapter(max_retries=retry_strategy)
        self.session.mount("https://", adapter)
        self.session.mount("http://", adapter)

    def get_access_token(self):
        response = self.session.post(
            f"{self.base_url}/v1/oauth2/token",
            data={'grant_type': 'client_credentials'},
            auth=(self.client_id, self.secret),
            headers={'Accept': 'application/json'},
            timeout=self.timeout,
        )
        if response.status_code != 200:
            logger.error(f"❌ [PAYPAL_TOKEN] Token request failed with status {response.status_code}")
            return None
        return response.json().get('access_token')

    def create_remote_order(self, currency, amount):
        amount = Decimal(amount).quantize(Decimal('0.01'))
        logger.info(f"💳 [PAYPAL_ORDER] Creating order: Amount={amount} {currency} | Mock={self.is_mock}")

        if self.is_mock:
            order_id = f"MOCK-{uuid.uuid4().hex[:16].upper()}"
            logger.info(f"🎭 [PAYPAL_ORDER_MOCK] Mock order created: {order_id}")
            return order_id

        try:
            token = self.get_access_token()
            if not token:
                return None

            response = self.session.post(
                f"{self.base_url}/v2/checkout/orders",
                json={
                    'intent': 'CAPTURE',
                    'purchase_units': [{
                        'amount': {'currency_code': currency, 'value': f"{amount:.2f}"},
                    }],
                },
                headers={
                    'Authorization': f"Bearer {token}",
                    'Content-Type': 'application/json',
                    # Same id on every retry, PayPal creates the order once
                    'PayPal-Request-Id': str(uuid.uuid4()),
                },
                timeout=self.timeout,
            )
            if response.status_code not in (200, 201):
                logger.error(f"❌ [PAYPAL_ORDER] Order request failed with status {response.status_code}")
                return None

            order_id = response.json().get('id')
            logger.info(f"✅ [PAYPAL_ORDER] Order created successfully: {order_id}")
            return order_id
        except (requests.RequestException, ValueError) as e:
            logger.error(f"❌ [PAYPAL_ORDER] PayPal API error: {type(e).__name__}: {e}")
            return None


paypal_client = PayPalClient()
