"""Built-in service variants.

Each variant is a ``SelectorAdapter`` with a default ``AdapterConfig``.
Selectors are configuration, not protocol: when a front end changes its
markup, override the affected roles through ``SelectorAdapter.merge_config``
instead of subclassing.
"""

from __future__ import annotations

from chatpilot.adapters.selector import SelectorAdapter
from chatpilot.models.adapter import AdapterConfig, SelectorRole

_USAGE_LIMIT = ('[data-testid="usage-limit"]', ".usage-warning", ".rate-limit")


CHATGPT_CONFIG = AdapterConfig(
    service_id="chatgpt",
    display_name="ChatGPT",
    home_url="https://chatgpt.com/",
    selectors={
        SelectorRole.INPUT: ('textarea[placeholder*="Message"]', 'textarea[data-id="root"]', "#prompt-textarea"),
        SelectorRole.SEND_BUTTON: (
            'button[data-testid="send-button"]',
            'button[aria-label*="Send"]',
            '[data-testid="send-button"]',
        ),
        SelectorRole.RESPONSE_CONTAINER: '[data-message-author-role="assistant"]',
        SelectorRole.USER_MESSAGE: '[data-message-author-role="user"]',
        SelectorRole.LOADING_INDICATOR: (".result-streaming", '[data-testid*="loading"]', ".loading"),
        SelectorRole.STOP_BUTTON: ('button[data-testid="stop-button"]', 'button[aria-label*="Stop"]'),
        SelectorRole.NEW_CHAT_BUTTON: ('a[href="/"]', 'button[aria-label*="New chat"]'),
        SelectorRole.ERROR_INDICATOR: ('[role="alert"]', ".error-message", '[data-testid="error"]'),
        SelectorRole.LOGIN_INDICATOR: 'button[data-testid="login-button"]',
        SelectorRole.USAGE_LIMIT: _USAGE_LIMIT,
    },
    content_selectors=(".markdown", "[data-message-content]", ".message-content", "p", "div"),
    login_paths=("/auth",),
)

CLAUDE_CONFIG = AdapterConfig(
    service_id="claude",
    display_name="Claude",
    home_url="https://claude.ai/new",
    selectors={
        SelectorRole.INPUT: (
            'div[contenteditable="true"][data-testid="chat-input"]',
            'div[contenteditable="true"].ProseMirror',
            'textarea[placeholder*="Talk to Claude"]',
        ),
        SelectorRole.SEND_BUTTON: (
            'button[aria-label*="Send"]',
            'button[data-testid="send-button"]',
            'button:has(svg[data-icon="send"])',
        ),
        SelectorRole.RESPONSE_CONTAINER: ('[data-testid="message"]', ".message", '[data-role="assistant"]'),
        SelectorRole.LOADING_INDICATOR: ('[data-testid="loading"]', ".loading", ".thinking", '[aria-label*="thinking"]'),
        SelectorRole.NEW_CHAT_BUTTON: (
            'button[aria-label*="New chat"]',
            'a[href*="new"]',
            'button:has(svg[data-icon="plus"])',
        ),
        SelectorRole.ERROR_INDICATOR: ('[role="alert"]', ".error", '[data-testid="error"]'),
        SelectorRole.LOGIN_INDICATOR: ('button[data-testid="login"]', 'a[href*="login"]', 'button:has-text("Sign in")'),
        SelectorRole.USAGE_LIMIT: _USAGE_LIMIT,
    },
    content_selectors=(".message-content", '[data-testid="message-content"]', ".markdown", ".prose", "p", "div"),
    extra_indicators=(
        'div:has-text("This may take a few seconds")',
        'div:has-text("正在验证您是否是真人")',
        'div:has-text("这可能需要几秒钟时间")',
        '[data-testid="verification"]',
    ),
)

GEMINI_CONFIG = AdapterConfig(
    service_id="gemini",
    display_name="Google Gemini",
    home_url="https://gemini.google.com/app",
    selectors={
        SelectorRole.INPUT: (
            'textarea[placeholder*="Enter a prompt"]',
            'div[contenteditable="true"][data-placeholder*="prompt"]',
            "rich-textarea textarea",
            ".ql-editor",
        ),
        SelectorRole.SEND_BUTTON: (
            'button[aria-label*="Send"]',
            'button[data-testid="send"]',
            'button:has(svg[data-icon="send"])',
            "button:has(.send-icon)",
        ),
        SelectorRole.RESPONSE_CONTAINER: ('[data-testid="response"]', ".response-container", ".model-response"),
        SelectorRole.LOADING_INDICATOR: (
            '[data-testid="loading"]',
            ".loading",
            ".thinking",
            '[aria-label*="Generating"]',
            ".spinner",
        ),
        SelectorRole.STOP_BUTTON: ('button[aria-label*="Stop"]', 'button[data-testid="stop"]', "button:has(.stop-icon)"),
        SelectorRole.NEW_CHAT_BUTTON: (
            'button[aria-label*="New chat"]',
            'button[data-testid="new-chat"]',
            'a[href*="new"]',
        ),
        SelectorRole.ERROR_INDICATOR: ('[role="alert"]', ".error-message", '[data-testid="error"]', ".error-banner"),
        SelectorRole.LOGIN_INDICATOR: (
            'button[data-testid="sign-in"]',
            'a[href*="accounts.google.com"]',
            'button:has-text("Sign in")',
        ),
        SelectorRole.USAGE_LIMIT: _USAGE_LIMIT,
    },
    content_selectors=(".markdown", ".response-content", ".message-content", "p", "div"),
    login_paths=("/signin", "/ServiceLogin"),
    extra_indicators=('[data-testid="access-denied"]', ".access-denied"),
)

COPILOT_CONFIG = AdapterConfig(
    service_id="copilot",
    display_name="Microsoft Copilot",
    home_url="https://copilot.microsoft.com/",
    selectors={
        SelectorRole.INPUT: (
            'textarea[placeholder*="Ask me anything"]',
            'div[contenteditable="true"][data-placeholder*="Ask"]',
            ".cib-serp-main textarea",
            "#searchbox textarea",
        ),
        SelectorRole.SEND_BUTTON: (
            'button[aria-label*="Submit"]',
            'button[data-testid="send"]',
            '.cib-serp-main button[type="submit"]',
        ),
        SelectorRole.RESPONSE_CONTAINER: (
            '[data-testid="response"]',
            ".ac-container",
            ".cib-serp-main .ac-textBlock",
        ),
        SelectorRole.USER_MESSAGE: ('[data-testid="user-message"]', ".user-message"),
        SelectorRole.LOADING_INDICATOR: ('[data-testid="loading"]', ".loading", ".typing-indicator"),
        SelectorRole.STOP_BUTTON: ('button[aria-label*="Stop"]', 'button[data-testid="stop"]'),
        SelectorRole.NEW_CHAT_BUTTON: ('button[aria-label*="New topic"]', 'button[data-testid="new-chat"]'),
        SelectorRole.ERROR_INDICATOR: ('[role="alert"]', ".error-message", ".cib-serp-main .error"),
        SelectorRole.LOGIN_INDICATOR: (
            'button[data-testid="sign-in"]',
            'a[href*="login.microsoftonline.com"]',
            'button:has-text("Sign in")',
        ),
        SelectorRole.USAGE_LIMIT: _USAGE_LIMIT,
    },
    content_selectors=(
        ".ac-textBlock",
        '[data-testid="response-content"]',
        ".response-content",
        ".message-content",
        ".markdown-content",
        "p",
        "div",
    ),
    login_paths=("/login", "/oauth2"),
    extra_indicators=('[data-testid="access-denied"]', ".access-denied"),
)


class ChatGPTAdapter(SelectorAdapter):
    variant_id = "chatgpt"
    default_config = CHATGPT_CONFIG


class ClaudeAdapter(SelectorAdapter):
    variant_id = "claude"
    default_config = CLAUDE_CONFIG


class GeminiAdapter(SelectorAdapter):
    variant_id = "gemini"
    default_config = GEMINI_CONFIG


class CopilotAdapter(SelectorAdapter):
    variant_id = "copilot"
    default_config = COPILOT_CONFIG


BUILTIN_VARIANTS: dict[str, type[SelectorAdapter]] = {
    "chatgpt": ChatGPTAdapter,
    "claude": ClaudeAdapter,
    "gemini": GeminiAdapter,
    "copilot": CopilotAdapter,
    "generic": SelectorAdapter,
}
