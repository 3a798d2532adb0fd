"""HTTP transport for the NewRelic REST API with link-header pagination"""
from typing import NamedTuple, Optional, Sequence, Tuple, Union

import httpx

from config import Config
from logging_config import get_logger
from . import USER_AGENT
from .errors import APIRequestError


logger = get_logger(__name__)

QueryParamsType = Union[httpx.QueryParams, Sequence[Tuple[str, str]], None]

OVERLOAD_DOCS = "https://docs.newrelic.com/docs/apis/rest-api-v2/requirements/api-overload-protection-handling-429-errors"


class Pages(NamedTuple):
    """Concatenated page bodies and whether a 429 cut pagination short"""
    body: bytes
    throttled: bool = False


class NewRelicClient:
    """Authenticated GET client that follows paginated responses"""

    def __init__(self, api_server: str, api_key: str, timeout: float = 5.0,
                 debug_proxy_address: Optional[str] = None,
                 transport: Optional[httpx.BaseTransport] = None):
        if not api_key:
            raise ValueError("Cannot continue without an API key")

        client_kwargs = {
            "base_url": api_server,
            "timeout": timeout,
            "headers": {"User-Agent": USER_AGENT, "X-Api-Key": api_key},
        }

        if debug_proxy_address:
            # Local traffic inspection only, certificates are not checked
            logger.warning("Routing API requests through insecure debug proxy", proxy=debug_proxy_address)
            client_kwargs["proxy"] = debug_proxy_address
            client_kwargs["verify"] = False

        if transport is not None:
            client_kwargs["transport"] = transport

        self.api_server = api_server
        self._http = httpx.Client(**client_kwargs)

    @classmethod
    def from_config(cls, config: Config, transport: Optional[httpx.BaseTransport] = None) -> "NewRelicClient":
        return cls(
            api_server=config.api_server,
            api_key=config.api_key,
            timeout=config.timeout,
            debug_proxy_address=config.debug_proxy_address,
            transport=transport,
        )

    def request(self, path: str, params: QueryParamsType = None) -> bytes:
        """GET a path and return the concatenated bodies of all its pages"""
        return self.get_pages(path, params).body

    def get_pages(self, path: str, params: QueryParamsType = None) -> Pages:
        """GET a path and follow its pages.

        A 429 response stops pagination without raising. The result holds
        the pages read so far and is marked ``throttled``.
        """
        query = httpx.QueryParams(params or [])
        body = b""
        requested = set()

        while True:
            requested.add(str(query))
            response = self._get(path, query)

            if response.status_code == 429:
                logger.warning(
                    "API limit exceeded, NewRelic returned 429",
                    path=path,
                    pages_read=len(requested) - 1,
                    docs=OVERLOAD_DOCS,
                )
                return Pages(body, throttled=True)

            if response.status_code != 200:
                raise APIRequestError(
                    f"Unexpected status {response.status_code} for {response.url}",
                    status_code=response.status_code,
                    url=str(response.url),
                )

            body += response.content

            next_query = self._next_page(response, query)
            if next_query is None:
                return Pages(body)
            if str(next_query) in requested:
                logger.warning("Next page repeats an earlier request, stopping", path=path, params=str(next_query))
                return Pages(body)
            query = next_query

    def _get(self, path: str, query: httpx.QueryParams) -> httpx.Response:
        logger.debug("Making API call", path=path, params=str(query))
        try:
            return self._http.get(path, params=query)
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise APIRequestError(f"Request to {path} failed: {e}") from e

    def _next_page(self, response: httpx.Response, query: httpx.QueryParams) -> Optional[httpx.QueryParams]:
        """Build the query of the following page from the response's Link header"""
        links = response.links

        last = links.get("last")
        if last and last.get("url"):
            try:
                pages = httpx.URL(last["url"]).params.get("page")
                logger.debug("Found pages for request", pages=pages, url=str(response.url))
            except httpx.InvalidURL as e:
                logger.error("Error parsing 'last' relation link", link=last["url"], error=str(e))

        relation = links.get("next")
        if not relation or not relation.get("url"):
            return None

        try:
            next_url = httpx.URL(relation["url"])
        except httpx.InvalidURL as e:
            logger.error("Error parsing 'next' relation link", link=relation["url"], error=str(e))
            return None

        cursor = next_url.params.get("cursor")
        if cursor:
            return query.set("cursor", cursor).remove("page")

        page = next_url.params.get("page")
        if page:
            return query.set("page", page)

        return None

    def close(self) -> None:
        self._http.close()

    def __enter__(self) -> "NewRelicClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()
