"""HTTP 传输层。

负责与补全服务之间的全部网络 I/O：

1. 附加 ``Authorization: Bearer <key>`` 头。
2. 发送一次性 JSON / multipart / GET 请求，或建立长连接的流式 POST。
3. 在边界处把 httpx 异常与非 2xx 状态码归类为 domain.exceptions 中的业务异常。

超时策略：建立连接与发送请求使用较短的 request_timeout（默认 60 秒），
读取使用较长的 resource_timeout（默认 300 秒），以容纳缓慢的流式输出。
"""

from typing import Any, AsyncIterator, Dict, Optional

import httpx

from chat_core.domain.exceptions import (
    InvalidAPIKeyError,
    InvalidURLError,
    NetworkError,
    RateLimitError,
    RequestTimeoutError,
    ServerError,
)


def classify_status(status_code: int, body: str = "") -> None:
    """2xx 直接返回，其余状态码抛出对应的业务异常。"""

    if 200 <= status_code < 300:
        return
    if status_code == 401:
        raise InvalidAPIKeyError()
    if status_code == 429:
        raise RateLimitError()
    raise ServerError(status_code=status_code, body=body)


class HttpTransport:
    """带 Bearer 凭据的 httpx 异步传输封装。

    每次调用都会创建独立的 AsyncClient，请求之间不共享连接状态。
    """

    def __init__(self, api_key: str, request_timeout: float = 60.0, resource_timeout: float = 300.0):
        self._api_key = api_key
        self._timeout = httpx.Timeout(
            resource_timeout,
            connect=request_timeout,
            write=request_timeout,
            pool=request_timeout,
        )

    @property
    def headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self._api_key}"}

    async def post_json(self, url: str, payload: Dict[str, Any]) -> httpx.Response:
        return await self._send("POST", url, json=payload)

    async def post_multipart(
        self,
        url: str,
        files: Dict[str, Any],
        data: Optional[Dict[str, str]] = None,
    ) -> httpx.Response:
        return await self._send("POST", url, files=files, data=data or {})

    async def get(self, url: str) -> httpx.Response:
        return await self._send("GET", url)

    async def stream_post(self, url: str, payload: Dict[str, Any]) -> AsyncIterator[bytes]:
        """建立流式 POST，逐块产出原始字节。

        迭代器耗尽表示正常结束；关闭迭代器（aclose）会同时关闭底层连接。
        """

        try:
            async with httpx.AsyncClient(timeout=self._timeout, trust_env=False) as client:
                async with client.stream(
                    "POST",
                    url,
                    json=payload,
                    headers={**self.headers, "Accept": "text/event-stream"},
                ) as resp:
                    if not 200 <= resp.status_code < 300:
                        body = (await resp.aread()).decode("utf-8", errors="replace")
                        classify_status(resp.status_code, body)
                    async for chunk in resp.aiter_bytes():
                        yield chunk
        except (httpx.InvalidURL, httpx.UnsupportedProtocol) as e:
            raise InvalidURLError(url, cause=e) from e
        except httpx.TimeoutException as e:
            raise RequestTimeoutError(str(e) or "Request timed out") from e
        except httpx.RequestError as e:
            raise NetworkError(e) from e

    async def _send(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        try:
            async with httpx.AsyncClient(timeout=self._timeout, trust_env=False) as client:
                resp = await client.request(method, url, headers=self.headers, **kwargs)
        except (httpx.InvalidURL, httpx.UnsupportedProtocol) as e:
            raise InvalidURLError(url, cause=e) from e
        except httpx.TimeoutException as e:
            # 连接超时、读取超时等
            raise RequestTimeoutError(str(e) or "Request timed out") from e
        except httpx.RequestError as e:
            # 其他网络错误：DNS 失败、连接被拒绝等
            raise NetworkError(e) from e
        classify_status(resp.status_code, resp.text)
        return resp
