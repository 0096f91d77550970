# celine/websub/core/websub/discovery.py
"""
Topic discovery: resolves a resource URL to its canonical topic URL and the
hubs that publish it.

HEAD is tried first; a complete answer from its ``Link`` headers ends
discovery. Otherwise the resource is fetched with GET, its headers take
precedence over HEAD's, and an HTML body is searched for head ``<link>``
elements as a last resort.
"""
from __future__ import annotations

import logging

import httpx

from celine.websub.contracts.subscription import DiscoverResult
from celine.websub.core.websub.constants import HTML_MEDIA_TYPE, LinkRels
from celine.websub.core.websub.errors import CommunicationError, ProtocolError
from celine.websub.core.websub.links import parse_html_links, parse_link_headers

logger = logging.getLogger(__name__)


def _result_from_headers(response: httpx.Response) -> DiscoverResult:
    links = parse_link_headers(response.headers.get_list("link"), str(response.url))
    result = DiscoverResult()
    for link in links:
        if link.has_rel(LinkRels.SELF) and result.topic_url is None:
            result.topic_url = link.url
        if link.has_rel(LinkRels.HUB):
            result.hub_urls.append(link.url)
    return result


def _media_type(response: httpx.Response) -> str | None:
    value = response.headers.get("content-type")
    if not value:
        return None
    media_type = value.split(";", 1)[0].strip().lower()
    return media_type or None


class TopicDiscoverer:
    """Runs WebSub discovery over a caller-configured ``httpx.Client``."""

    def __init__(self, client: httpx.Client) -> None:
        self._client = client

    def _request(self, method: str, url: str) -> httpx.Response:
        try:
            return self._client.request(method, url, follow_redirects=True)
        except httpx.InvalidURL as exc:
            raise ProtocolError(f"Invalid topic URL {url!r}") from exc
        except httpx.RequestError as exc:
            logger.warning("Discovery %s %s failed: %s", method, url, exc)
            raise CommunicationError(
                f"{method} {url} failed: {exc}", url=url
            ) from exc

    def discover(self, topic_url: str) -> DiscoverResult:
        """
        Discover the topic URL and hub URLs for a resource.

        Args:
            topic_url: URL of the resource to subscribe to.

        Returns:
            DiscoverResult with the canonical topic URL (if any) and the
            priority-ordered hub URLs.

        Raises:
            CommunicationError: On transport failure or a non-2xx GET.
            ProtocolError: If the GET response cannot be searched for links,
                or an HTML document carries no topic or hub links at all, or
                ``topic_url`` is malformed. Malformed link URLs are skipped.
        """
        response = self._request("HEAD", topic_url)
        if response.is_success:
            result = _result_from_headers(response)
        else:
            logger.debug(
                "HEAD %s returned %d, ignoring its headers",
                topic_url,
                response.status_code,
            )
            result = DiscoverResult()

        if result.is_complete:
            logger.debug("Discovered %s from HEAD: %s", topic_url, result)
            return result

        response = self._request("GET", topic_url)
        if not response.is_success:
            raise CommunicationError(
                f"Received status code {response.status_code} from {topic_url}",
                status_code=response.status_code,
                url=topic_url,
            )

        latest = _result_from_headers(response)
        if latest.topic_url is not None:
            result.topic_url = latest.topic_url
        if latest.hub_urls:
            result.hub_urls = latest.hub_urls

        if result.is_complete:
            logger.debug("Discovered %s from GET headers: %s", topic_url, result)
            return result

        media_type = _media_type(response)
        if media_type is None:
            raise ProtocolError("No content-type provided with response.")
        if media_type != HTML_MEDIA_TYPE:
            raise ProtocolError(
                f"Response not understood as WebSub contents ({media_type})."
            )

        need_topic = result.topic_url is None
        need_hubs = not result.hub_urls
        for link in parse_html_links(response.text, str(response.url)):
            if need_topic and link.has_rel(LinkRels.SELF):
                result.topic_url = link.url
                need_topic = False
            if need_hubs and link.has_rel(LinkRels.HUB):
                result.hub_urls.append(link.url)

        if result.topic_url is None and not result.hub_urls:
            raise ProtocolError(f"No topic or hub links found in {topic_url}.")

        logger.debug("Discovered %s from HTML: %s", topic_url, result)
        return result
