"""Outbound chat gateway integration."""

from .client import ChatGateway, HttpChatGateway, NullChatGateway

__all__ = ["ChatGateway", "HttpChatGateway", "NullChatGateway"]
