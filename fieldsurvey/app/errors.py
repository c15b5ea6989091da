from __future__ import annotations

from typing import Optional


class AppError(Exception):
    # Base class for domain errors (intended, meaningful failures).
    pass


class MalformedResponse(AppError):
    # Raised when an LLM completion holds no decodable matched-question envelope.
    PREVIEW_CHARS = 500

    def __init__(self, raw_text: str, reason: Optional[str] = None):
        self.preview = (raw_text or "")[: self.PREVIEW_CHARS]
        self.reason = reason
        message = "Failed to parse JSON array from response."
        if reason:
            message += f" ({reason})"
        message += f"\n\nRaw content preview: {self.preview}"
        super().__init__(message)


class MissingCredential(AppError):
    # Raised before any network call when the selected provider has no API key.
    def __init__(self, provider: str, key_url: str):
        self.provider = provider
        self.key_url = key_url
        super().__init__(
            f"{provider} API key not configured. Please set your API key in Settings.\n\n"
            f"Get your API key from: {key_url}"
        )


class LLMRequestError(AppError):
    # Raised when the provider call itself fails (network, HTTP status, empty content).
    def __init__(self, provider: str, message: str):
        self.provider = provider
        super().__init__(f"{provider} API Error: {message}")


class DecodeError(AppError):
    # Raised when a persisted document does not match the expected schema.
    def __init__(self, message: str, source: Optional[str] = None):
        self.source = source
        super().__init__(f"{source}: {message}" if source else message)


class IOFailure(AppError):
    # Raised for directory creation, file read or file write failures.
    def __init__(self, message: str, path: Optional[str] = None):
        self.path = path
        super().__init__(f"{message}: {path}" if path else message)


class AggregationCancelled(AppError):
    # Raised when a cooperative cancellation request stops a file aggregation.
    def __init__(self, files_processed: int):
        self.files_processed = files_processed
        super().__init__(f"Aggregation cancelled after {files_processed} file(s).")
