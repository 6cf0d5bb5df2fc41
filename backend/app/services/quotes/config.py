"""KIS (brokerage quote API) config. Credentials from settings (KIS_APP_KEY, KIS_APP_SECRET) or KisConfig args."""
from app.config import settings

DEFAULT_BASE_URL = "https://openapi.koreainvestment.com:9443"

# Transaction ids per endpoint (provider requires one per request)
TR_DOMESTIC_PRICE = "FHKST01010100"
TR_DOMESTIC_DAILY = "FHKST03010100"
TR_OVERSEAS_PRICE = "HHDFS00000300"
TR_OVERSEAS_DAILY = "HHDFS76240000"

PATH_TOKEN = "/oauth2/tokenP"
PATH_DOMESTIC_PRICE = "/uapi/domestic-stock/v1/quotations/inquire-price"
PATH_DOMESTIC_DAILY = "/uapi/domestic-stock/v1/quotations/inquire-daily-price"
PATH_OVERSEAS_PRICE = "/uapi/overseas-price/v1/quotations/price"
PATH_OVERSEAS_DAILY = "/uapi/overseas-price/v1/quotations/dailyprice"

# msg_cd for a bearer token that was revoked or superseded before its stated expiry
MSG_TOKEN_EXPIRED = "EGW00123"


class KisConfig:
    """API credentials and base URL for KIS."""

    __slots__ = ("app_key", "app_secret", "base_url")

    def __init__(
        self,
        *,
        app_key: str | None = None,
        app_secret: str | None = None,
        base_url: str | None = None,
    ) -> None:
        self.app_key = (app_key if app_key is not None else settings.kis_app_key).strip()
        self.app_secret = (app_secret if app_secret is not None else settings.kis_app_secret).strip()
        self.base_url = (base_url or settings.kis_base_url or DEFAULT_BASE_URL).rstrip("/")

    def is_configured(self) -> bool:
        return bool(self.app_key and self.app_secret)

    def headers(self, token: str, tr_id: str) -> dict[str, str]:
        return {
            "Content-Type": "application/json; charset=UTF-8",
            "authorization": f"Bearer {token}",
            "appkey": self.app_key,
            "appsecret": self.app_secret,
            "tr_id": tr_id,
        }
