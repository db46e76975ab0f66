# storefront/services/http.py

import asyncio

import httpx


async def send_with_retry(
    client: httpx.AsyncClient,
    method: str,
    url: str,
    *,
    retries: int = 0,
    retry_delay: float = 0.5,
    backoff_factor: float = 2.0,
    log=None,
    target: str = "http",
    **kwargs,
) -> httpx.Response:
    """
    Выполняет запрос, повторяя его при сетевых ошибках, таймаутах и ответах 5xx.

    Ответы 4xx возвращаются сразу: ошибки авторизации и валидации не повторяются.
    После исчерпания попыток пробрасывается последнее сетевое исключение
    или возвращается последний ответ 5xx.
    """
    retries = max(retries, 0)
    for attempt in range(retries + 1):
        try:
            response = await client.request(method, url, **kwargs)
        except httpx.TransportError as e:
            if attempt == retries:
                raise
            delay = retry_delay * (backoff_factor ** attempt)
            if log:
                await log.log_warning(target, f"{method} {url}: сетевая ошибка, повтор через {delay}с", {
                    "attempt": attempt + 1,
                    "error": repr(e),
                })
            await asyncio.sleep(delay)
            continue

        if response.status_code < 500 or attempt == retries:
            return response

        delay = retry_delay * (backoff_factor ** attempt)
        if log:
            await log.log_warning(target, f"{method} {url}: ответ {response.status_code}, повтор через {delay}с", {
                "attempt": attempt + 1,
            })
        await asyncio.sleep(delay)

    raise RuntimeError("unreachable")


def error_message(response: httpx.Response) -> str:
    """Достаёт текст ошибки из JSON-ответа внешнего API."""
    try:
        body = response.json()
    except ValueError:
        return response.text or response.reason_phrase

    if isinstance(body, dict):
        if body.get("errors"):
            return ", ".join(str(e.get("message", e)) for e in body["errors"] if e)
        for key in ("description", "message", "error_description", "error"):
            if body.get(key):
                return str(body[key])
    return str(body)
