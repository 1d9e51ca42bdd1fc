"""ResendSender — email delivery over the Resend HTTP API, bodies rendered with Jinja2."""

from pathlib import Path

import httpx
import structlog
from jinja2 import Environment, FileSystemLoader

from riskmapper.core.exceptions import NotificationError

logger = structlog.get_logger(__name__)

TEMPLATE_DIR = Path(__file__).parent / "templates"
RESEND_API_URL: str = "https://api.resend.com/emails"
SEND_TIMEOUT_SECONDS: float = 15.0
PRODUCT_NAME: str = "Risk Mapper"

_CURRENCY_SYMBOLS: dict[str, str] = {"usd": "$", "eur": "€", "gbp": "£"}


def format_amount(amount_cents: int, currency: str) -> str:
    """5900, "usd" -> "$59.00"; unknown currencies get the ISO code appended."""
    value = f"{amount_cents / 100:.2f}"
    symbol = _CURRENCY_SYMBOLS.get(currency.lower())
    return f"{symbol}{value}" if symbol else f"{value} {currency.upper()}"


class ResendSender:
    def __init__(
        self,
        api_key: str,
        from_addr: str,
        from_name: str,
        base_url: str,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._api_key = api_key
        self._from = f"{from_name} <{from_addr}>"
        self._base_url = base_url.rstrip("/")
        self._transport = transport
        self.env = Environment(
            loader=FileSystemLoader(str(TEMPLATE_DIR)),
            autoescape=True,
        )

    def report_url(self, access_token: str) -> str:
        return f"{self._base_url}/report/{access_token}"

    async def send_report_ready(self, to: str, business_name: str, access_token: str) -> None:
        subject = "Your Risk Assessment is Ready"
        if business_name:
            subject = f"{business_name}: Your Risk Assessment is Ready"

        html = self.env.get_template("report_ready.html").render(
            business_name=business_name,
            report_url=self.report_url(access_token),
            product_name=PRODUCT_NAME,
        )
        await self._send(to, subject, html)

    async def send_receipt(self, to: str, business_name: str, amount_cents: int, currency: str) -> None:
        subject = "Your payment was received"
        if business_name:
            subject = f"{business_name}: Payment Confirmed"

        html = self.env.get_template("receipt.html").render(
            business_name=business_name,
            amount=format_amount(amount_cents, currency),
            product_name=PRODUCT_NAME,
        )
        await self._send(to, subject, html)

    async def _send(self, to: str, subject: str, html: str) -> None:
        body = {"from": self._from, "to": [to], "subject": subject, "html": html}
        try:
            async with httpx.AsyncClient(timeout=SEND_TIMEOUT_SECONDS, transport=self._transport) as client:
                response = await client.post(
                    RESEND_API_URL,
                    json=body,
                    headers={"Authorization": f"Bearer {self._api_key}"},
                )
        except httpx.HTTPError as exc:
            raise NotificationError(f"Resend request failed: {exc}") from exc

        if response.is_error:
            raise NotificationError(f"Resend returned {response.status_code}: {response.text[:200]}")

        logger.info("email_sent", provider="resend", subject=subject, provider_id=_provider_id(response))


def _provider_id(response: httpx.Response) -> str | None:
    """Message id from a 2xx reply; None when the body is not the expected JSON object."""
    try:
        payload = response.json()
    except ValueError:
        logger.warning("resend_unparseable_response", status_code=response.status_code, body=response.text[:200])
        return None
    return payload.get("id") if isinstance(payload, dict) else None



class LogSender:
    """Stand-in used when no Resend key is configured: logs instead of sending."""

    async def send_report_ready(self, to: str, business_name: str, access_token: str) -> None:
        logger.info("email_skipped_no_provider", template="report_ready", business_name=business_name)

    async def send_receipt(self, to: str, business_name: str, amount_cents: int, currency: str) -> None:
        logger.info("email_skipped_no_provider", template="receipt", amount_cents=amount_cents, currency=currency)
