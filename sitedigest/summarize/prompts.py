"""Prompt templates and response post-processing for page summaries."""

import re

URL_PLACEHOLDER = "{url}"
TEXT_PLACEHOLDER = "{text}"

DEFAULT_PROMPT_TEMPLATE = """
You will see a webpage content from {url}.
Create its concise summary for a digest.
Your answer should contain only summary, it will be pasted directly into digest.
Nobody should know it was generated using an LLM.
Try your best to keep original style and language.
Webpage content to summarize:"""

# Reasoning models wrap their deliberation in <think>...</think>
THINK_STRIPPER = re.compile(r"<think>[\s\S]*?</think>\s*")


def build_messages(url: str, text: str, template: str | None = None) -> list[str]:
    """User messages for one page.

    The text is substituted inline when the template has a ``{text}``
    placeholder and sent as a second message otherwise.
    """
    template = template or DEFAULT_PROMPT_TEMPLATE
    prompt = template.replace(URL_PLACEHOLDER, url).replace(TEXT_PLACEHOLDER, text)
    messages = [prompt]
    if TEXT_PLACEHOLDER not in template:
        messages.append(text)
    return messages


def clean_response(response: str) -> str:
    """Drop reasoning blocks and surrounding whitespace."""
    return THINK_STRIPPER.sub("", response).strip()
