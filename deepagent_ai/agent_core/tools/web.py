from __future__ import annotations

"""Web tools: ``web_search``, ``http_request`` and ``fetch_url``.

HTTP goes through an ``httpx.AsyncClient`` (injectable, so tests can use
``httpx.MockTransport``). Search is delegated to an injected async function;
no search provider is bundled.

Usage
-----

    async def search(query: str, max_results: int) -> list[SearchResult]:
        ...

    web = WebTools(search=search)
    agent = create_deep_agent(model, tools=web.definitions())
"""

import json
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Literal, Optional, Sequence, Union

import httpx
from bs4 import BeautifulSoup
from pydantic import Field

from ..schemas.events import AgentEventType
from .base import ToolContext, ToolDefinition, ToolInput, ToolOutput

logger = logging.getLogger(__name__)

USER_AGENT = "Mozilla/5.0 (compatible; deepagent-ai/0.1)"

WEB_SEARCH_DESCRIPTION = """Search the web for current information, news, and documentation.

Returns search results with titles, URLs and relevant excerpts.
Synthesize the results into an answer and cite the URLs you used."""

HTTP_REQUEST_DESCRIPTION = """Make HTTP requests to APIs and web services.

Supports GET, POST, PUT, DELETE and PATCH with custom headers, query parameters and a body.
Returns the status code and the response content (JSON or text)."""

FETCH_URL_DESCRIPTION = """Fetch a web page and return its readable text content.

Scripts, styles and navigation are stripped; the main article is preferred when present.
Cite the URL when referencing fetched content."""


@dataclass
class SearchResult:
    """A single search result."""

    title: str
    url: str
    snippet: str
    score: Optional[float] = None


SearchFunction = Callable[[str, int], Awaitable[Sequence[Union[SearchResult, Dict[str, Any]]]]]


class WebSearchArgs(ToolInput):
    query: str = Field(description="The search query (be specific and detailed)")
    max_results: int = Field(default=5, ge=1, le=20, description="Number of results to return (1-20)")


class HttpRequestArgs(ToolInput):
    url: str = Field(description="Target URL (http or https)")
    method: Literal["GET", "POST", "PUT", "DELETE", "PATCH"] = "GET"
    headers: Optional[Dict[str, str]] = None
    body: Optional[Union[str, Dict[str, Any]]] = Field(default=None, description="Request body (string or JSON object)")
    params: Optional[Dict[str, str]] = Field(default=None, description="URL query parameters")
    timeout: Optional[float] = Field(default=None, gt=0, description="Request timeout in seconds")


class FetchUrlArgs(ToolInput):
    url: str = Field(description="The URL to fetch (http or https)")
    timeout: Optional[float] = Field(default=None, gt=0, description="Request timeout in seconds")
    extract_article: bool = Field(default=True, description="Prefer the main/article element over the whole page")


def _coerce_result(item: Union[SearchResult, Dict[str, Any]]) -> SearchResult:
    if isinstance(item, SearchResult):
        return item
    return SearchResult(
        title=str(item.get("title") or ""),
        url=str(item.get("url") or ""),
        snippet=str(item.get("snippet") or item.get("content") or ""),
        score=item.get("score"),
    )


def format_search_results(query: str, results: List[SearchResult]) -> str:
    blocks = []
    for i, r in enumerate(results, start=1):
        score = f"{r.score:.2f}" if r.score is not None else "N/A"
        blocks.append(f"## Result {i}: {r.title}\nURL: {r.url}\nScore: {score}\nContent: {r.snippet}\n")
    return f'Found {len(results)} results for query: "{query}"\n\n' + "\n---\n\n".join(blocks)


def html_to_text(html: str, *, extract_article: bool = True) -> str:
    """Reduce an HTML page to readable text, title first."""
    soup = BeautifulSoup(html, "html.parser")
    for element in soup(["script", "style", "nav", "footer", "header", "noscript"]):
        element.decompose()

    title = ""
    if soup.title and soup.title.string:
        title = soup.title.string.strip()

    root = None
    if extract_article:
        root = soup.find("main") or soup.find("article")
    root = root or soup.find("body") or soup
    text = root.get_text(separator="\n", strip=True)
    return f"# {title}\n\n{text}" if title else text


class WebTools:
    """Factory for the web tool definitions sharing one HTTP client."""

    def __init__(
        self,
        *,
        search: Optional[SearchFunction] = None,
        client: Optional[httpx.AsyncClient] = None,
        default_timeout: float = 30.0,
    ) -> None:
        self._search = search
        self._http = client or httpx.AsyncClient(follow_redirects=True, headers={"User-Agent": USER_AGENT})
        self._default_timeout = default_timeout

    async def aclose(self) -> None:
        await self._http.aclose()

    def definitions(self) -> List[ToolDefinition]:
        tools = [
            ToolDefinition(
                name="http_request",
                description=HTTP_REQUEST_DESCRIPTION,
                input_model=HttpRequestArgs,
                handler=self._http_request,
            ),
            ToolDefinition(
                name="fetch_url", description=FETCH_URL_DESCRIPTION, input_model=FetchUrlArgs, handler=self._fetch_url
            ),
        ]
        if self._search is not None:
            tools.insert(
                0,
                ToolDefinition(
                    name="web_search",
                    description=WEB_SEARCH_DESCRIPTION,
                    input_model=WebSearchArgs,
                    handler=self._web_search,
                ),
            )
        return tools

    async def _web_search(self, ctx: ToolContext, args: WebSearchArgs) -> ToolOutput:
        assert self._search is not None
        await ctx.emit(AgentEventType.web_search_start, query=args.query)
        try:
            raw = await self._search(args.query, args.max_results)
        except Exception as exc:
            logger.warning("web search failed for %r: %s", args.query, exc)
            await ctx.emit(AgentEventType.web_search_finish, query=args.query, result_count=0)
            return ToolOutput(content=f"Web search error: {exc}", is_error=True)

        results = [_coerce_result(item) for item in raw][: args.max_results]
        await ctx.emit(AgentEventType.web_search_finish, query=args.query, result_count=len(results))
        return ToolOutput(content=format_search_results(args.query, results))

    async def _http_request(self, ctx: ToolContext, args: HttpRequestArgs) -> ToolOutput:
        timeout = args.timeout or self._default_timeout
        await ctx.emit(AgentEventType.http_request_start, url=args.url, method=args.method)

        kwargs: Dict[str, Any] = {"headers": dict(args.headers or {}), "params": args.params, "timeout": timeout}
        if isinstance(args.body, str):
            kwargs["content"] = args.body
        elif args.body is not None:
            kwargs["json"] = args.body

        try:
            resp = await self._http.request(args.method, args.url, **kwargs)
        except httpx.TimeoutException:
            await ctx.emit(AgentEventType.http_request_finish, url=args.url, status_code=0)
            return ToolOutput(content=f"Request timed out after {timeout} seconds", is_error=True)
        except httpx.HTTPError as exc:
            await ctx.emit(AgentEventType.http_request_finish, url=args.url, status_code=0)
            return ToolOutput(content=f"HTTP request error: {exc}", is_error=True)

        content: Any = resp.text
        if "application/json" in resp.headers.get("content-type", ""):
            try:
                content = json.dumps(resp.json(), indent=2)
            except ValueError:
                content = resp.text

        await ctx.emit(AgentEventType.http_request_finish, url=str(resp.url), status_code=resp.status_code)
        return ToolOutput(
            content=(
                f"HTTP {args.method} {args.url}\n"
                f"Status: {resp.status_code}\n"
                f"Success: {str(resp.is_success).lower()}\n"
                f"Content:\n{content}"
            )
        )

    async def _fetch_url(self, ctx: ToolContext, args: FetchUrlArgs) -> ToolOutput:
        timeout = args.timeout or self._default_timeout
        await ctx.emit(AgentEventType.fetch_url_start, url=args.url)
        try:
            resp = await self._http.get(args.url, timeout=timeout)
        except httpx.TimeoutException:
            await ctx.emit(AgentEventType.fetch_url_finish, url=args.url, success=False)
            return ToolOutput(content=f"Request timed out after {timeout} seconds", is_error=True)
        except httpx.HTTPError as exc:
            await ctx.emit(AgentEventType.fetch_url_finish, url=args.url, success=False)
            return ToolOutput(content=f"Error fetching URL: {exc}", is_error=True)

        if not resp.is_success:
            await ctx.emit(AgentEventType.fetch_url_finish, url=str(resp.url), success=False)
            return ToolOutput(content=f"HTTP error: {resp.status_code} {resp.reason_phrase}", is_error=True)

        text = html_to_text(resp.text, extract_article=args.extract_article)
        await ctx.emit(AgentEventType.fetch_url_finish, url=str(resp.url), success=True)
        return ToolOutput(content=text)
