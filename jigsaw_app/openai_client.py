import base64
import logging
from typing import Callable

import httpx
from openai import OpenAI, OpenAIError

from .config import (
    CLIPDROP_API_KEY,
    CLIPDROP_URL,
    IMAGE_BACKEND,
    IMAGE_MODEL,
    OPENAI_API_KEY,
    PROMPT_MODEL,
    REQUEST_TIMEOUT,
)
from .errors import GenerationFailure

logger = logging.getLogger(__name__)


def get_client() -> OpenAI:
    if not OPENAI_API_KEY:
        raise GenerationFailure("OPENAI_API_KEY is not set")
    # max_retries=0: a failed call is terminal, the caller decides whether to retry
    return OpenAI(api_key=OPENAI_API_KEY, timeout=REQUEST_TIMEOUT, max_retries=0)


def month_prompt_request(month_name: str) -> str:
    return (
        "Give me a short, descriptive prompt (max 10 words ONLY) for a festival or general "
        f"occasion celebrated mainly in India or worldwide during the month of {month_name}."
    )


def generate_month_prompt(month_name: str, *, model: str = PROMPT_MODEL) -> str:
    """
    Asks the chat model for a short image prompt themed on the given month.
    Returns the stripped text; an empty answer is a GenerationFailure.
    """
    client = get_client()
    try:
        rsp = client.chat.completions.create(
            model=model,
            messages=[{"role": "user", "content": month_prompt_request(month_name)}],
        )
    except OpenAIError as e:
        logger.error("Prompt generation failed for %s: %s", month_name, e)
        raise GenerationFailure(f"Prompt generation failed: {e}") from e

    if not rsp.choices:
        raise GenerationFailure("Prompt generation returned no candidates")
    text = (rsp.choices[0].message.content or "").strip()
    if not text:
        raise GenerationFailure("Prompt generation returned an empty prompt")

    logger.info("Generated prompt for %s: %s", month_name, text)
    return text


def _download(url: str) -> bytes:
    try:
        r = httpx.get(url, timeout=REQUEST_TIMEOUT)
        r.raise_for_status()
    except httpx.HTTPError as e:
        raise GenerationFailure(f"Image download failed: {e}") from e
    return r.content


def generate_image_from_prompt(prompt: str, *, model: str = IMAGE_MODEL) -> bytes:
    """
    Calls Images API 'generate' with a prompt.
    Returns image bytes (downloaded from the returned URL, or decoded from b64_json).
    """
    client = get_client()
    try:
        result = client.images.generate(
            model=model,
            prompt=prompt,
            size="1024x1024",
        )
    except OpenAIError as e:
        logger.error("Image generation failed: %s", e)
        raise GenerationFailure(f"Image generation failed: {e}") from e

    if not result.data:
        raise GenerationFailure("Images API returned no data.")
    data0 = result.data[0]

    url = getattr(data0, "url", None)
    if url:
        return _download(url)

    b64 = getattr(data0, "b64_json", None)
    if b64:
        return base64.b64decode(b64)

    raise GenerationFailure("Images API returned neither url nor b64_json.")


def clipdrop_image_from_prompt(prompt: str) -> bytes:
    """ClipDrop text-to-image; the response body is the raw image."""
    if not CLIPDROP_API_KEY:
        raise GenerationFailure("CLIPDROP_API_KEY is not set")
    try:
        r = httpx.post(
            CLIPDROP_URL,
            json={"prompt": prompt},
            headers={"x-api-key": CLIPDROP_API_KEY},
            timeout=REQUEST_TIMEOUT,
        )
    except httpx.HTTPError as e:
        logger.error("ClipDrop request failed: %s", e)
        raise GenerationFailure(f"Image generation failed: {e}") from e

    if r.is_error:
        logger.error("ClipDrop error: %s - %s", r.status_code, r.text)
        raise GenerationFailure(f"Image generation failed: {r.status_code}")
    if not r.content:
        raise GenerationFailure("No image data received")
    return r.content


def image_generator(backend: str = IMAGE_BACKEND) -> Callable[[str], bytes]:
    if backend == "openai":
        return generate_image_from_prompt
    if backend == "clipdrop":
        return clipdrop_image_from_prompt
    raise ValueError(f"Unknown IMAGE_BACKEND: {backend!r}")
