import requests

from ..common.exceptions import DeliveryTransportError
from ..common.logging import logger
from ..domain.models import OutboundRequest


class LocalEndpointClient:
    """
    Thin wrapper over one long-lived requests.Session (shared connection pool).
    Returns (status, body bytes); anything without a response raises
    DeliveryTransportError.
    """

    def __init__(self, timeout: float = 20.0, session: requests.Session | None = None):
        self.timeout = timeout
        self.session = session or requests.Session()

    def send(self, request: OutboundRequest) -> tuple[int, bytes]:
        logger.debug(
            {
                "http": "post",
                "url": request.url,
                "bytes": len(request.body),
                "headers": sorted(request.headers),
            }
        )
        try:
            r = self.session.post(
                request.url,
                headers=request.headers,
                data=request.body,
                timeout=self.timeout,
                # a followed 3xx turns into a bodyless GET; report the 3xx itself
                allow_redirects=False,
            )
        except requests.RequestException as e:
            raise DeliveryTransportError(str(e)) from e
        return r.status_code, r.content

    def close(self) -> None:
        self.session.close()
